"""Pipeline error types."""


class PipelineError(Exception):
    """Base class for errors raised by the ingest and apply stages."""


class FileReadError(PipelineError):
    """A watched file could not be read within the retry budget."""

    def __init__(self, path, attempts: int):
        super().__init__(f"Cannot read file {path} after {attempts} attempts")
        self.path = path
        self.attempts = attempts


class MessageDecodeError(PipelineError):
    """A broker payload is not a valid status message."""


class StoreInitializationError(PipelineError):
    """The status store schema could not be prepared."""


class BrokerNotConnectedError(PipelineError):
    """A broker operation was attempted before connect() or after close()."""
