from instrument_status.models.base import Base
from instrument_status.models.module import ModuleRecord

__all__ = [
    "Base",
    "ModuleRecord",
]
