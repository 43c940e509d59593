from instrument_status.ingestion.file_reader import read_file_with_retry
from instrument_status.ingestion.watcher import FileOutcome, FolderWatcher, WatcherStats
from instrument_status.ingestion.xml_parser import MODULE_STATES, StatusXmlParser

__all__ = [
    "FileOutcome",
    "FolderWatcher",
    "MODULE_STATES",
    "StatusXmlParser",
    "WatcherStats",
    "read_file_with_retry",
]
