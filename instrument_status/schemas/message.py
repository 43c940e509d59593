"""Wire contract between the ingest watcher and the apply consumer.

Field names on the wire are exact (``PackageID``, ``Modules``, ``TimestampUtc``,
``ModuleCategoryID``, ``ModuleState``). Unknown fields are ignored and a
missing ``Modules`` array decodes as an empty sequence.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from instrument_status.core.errors import MessageDecodeError

UNKNOWN_PACKAGE_ID = "unknown"
UNKNOWN_MODULE = "UNKNOWN"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ModuleUpdate(BaseModel):
    """State reported for one module."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    module_category_id: str = Field(alias="ModuleCategoryID", min_length=1)
    module_state: str = Field(alias="ModuleState")


class NormalizedMessage(BaseModel):
    """Status report for one package, as published to the broker."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    package_id: str = Field(default=UNKNOWN_PACKAGE_ID, alias="PackageID")
    modules: tuple[ModuleUpdate, ...] = Field(default=(), alias="Modules")
    observed_at_utc: datetime = Field(default_factory=utc_now, alias="TimestampUtc")

    @field_validator("modules", mode="before")
    @classmethod
    def _null_modules_as_empty(cls, value):
        return () if value is None else value

    @field_validator("observed_at_utc")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def encode_message(message: NormalizedMessage) -> bytes:
    """Serialize a message to its UTF-8 JSON wire form."""
    return message.model_dump_json(by_alias=True).encode("utf-8")


def decode_message(body: bytes) -> NormalizedMessage:
    """Parse a wire payload, raising MessageDecodeError for anything unusable."""
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise MessageDecodeError(f"Payload is not valid UTF-8: {exc}") from exc

    try:
        return NormalizedMessage.model_validate_json(text)
    except ValidationError as exc:
        raise MessageDecodeError(f"Payload is not a valid status message: {exc}") from exc
