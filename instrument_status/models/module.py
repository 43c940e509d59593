"""Latest known state per instrument module."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from instrument_status.models.base import Base


class ModuleRecord(Base):
    """One row per module, overwritten by every upsert of its category id."""

    __tablename__ = "modules"

    module_category_id: Mapped[str] = mapped_column(String, primary_key=True)

    module_state: Mapped[str] = mapped_column(String, nullable=False)

    # ISO-8601 UTC string, written by the store on every upsert
    last_updated_utc: Mapped[str] = mapped_column(String, nullable=False)
