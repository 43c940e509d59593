"""Durable latest-state store for instrument modules."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from alembic import command
from alembic.config import Config
from sqlalchemy import Engine, func, select, text
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.orm import sessionmaker

from instrument_status.core.errors import StoreInitializationError
from instrument_status.core.logging import get_logger
from instrument_status.models.module import ModuleRecord

log = get_logger("status_store")

MIGRATIONS_DIR = Path(__file__).resolve().parent.parent / "migrations"


class StatusStore:
    """Keyed upsert store for ModuleRecord rows.

    Every upsert is its own transaction, so concurrent upserts of different
    keys never block each other for longer than one statement and an upsert of
    an existing key replaces state and timestamp together.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self._session_factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    def initialize(self) -> None:
        """Create the schema if absent; raise StoreInitializationError on any failure."""
        location = self.engine.url.render_as_string(hide_password=True)
        try:
            self._ensure_parent_dir()
            alembic_cfg = Config()
            alembic_cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
            with self.engine.begin() as connection:
                alembic_cfg.attributes["connection"] = connection
                command.upgrade(alembic_cfg, "head")
        except Exception as exc:
            log.error(f"Failed to initialize status store at {location}: {exc}")
            raise StoreInitializationError(f"Status store at {location} could not be initialized: {exc}") from exc
        log.info(f"Status store initialized at {location}")

    def _ensure_parent_dir(self) -> None:
        database = self.engine.url.database
        if self.engine.url.get_backend_name() != "sqlite" or not database or database == ":memory:":
            return
        Path(database).parent.mkdir(parents=True, exist_ok=True)

    def upsert(self, module_category_id: str, module_state: str) -> str:
        """Insert or overwrite the row for ``module_category_id``; returns the timestamp written."""
        now = datetime.now(timezone.utc).isoformat()
        stmt = insert(ModuleRecord).values(
            module_category_id=module_category_id,
            module_state=module_state,
            last_updated_utc=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[ModuleRecord.module_category_id],
            set_={
                "module_state": stmt.excluded.module_state,
                "last_updated_utc": stmt.excluded.last_updated_utc,
            },
        )
        try:
            with self._session_factory.begin() as db:
                db.execute(stmt)
        except Exception as exc:
            log.error(f"Failed to upsert {module_category_id}/{module_state}: {exc}")
            raise
        log.info(f"Saved/Updated module {module_category_id} => {module_state}")
        return now

    def get(self, module_category_id: str) -> Optional[ModuleRecord]:
        with self._session_factory() as db:
            return db.get(ModuleRecord, module_category_id)

    def count(self) -> int:
        with self._session_factory() as db:
            return db.execute(select(func.count()).select_from(ModuleRecord)).scalar_one()

    def ping(self) -> bool:
        try:
            with self.engine.connect() as connection:
                connection.execute(text("SELECT 1"))
            return True
        except Exception as exc:  # noqa: BLE001
            log.warning(f"Status store ping failed: {exc}")
            return False
