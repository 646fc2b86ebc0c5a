# note_models.py
# Description: Value shapes for notes and user settings, plus timestamp helpers.
#
# Imports
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
#
# Third-Party Libraries
from pydantic import BaseModel, ConfigDict, Field, field_validator
#
# Local Imports
from notaro_core.exceptions import SerializationFault
#
########################################################################################################################
#
# Timestamp helpers:

_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

# Largest value a SQLite INTEGER column can hold.
MAX_VERSION = 2**63 - 1


def utc_now() -> datetime:
    """Current UTC time, timezone-aware."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Interpret naive datetimes as UTC and normalise aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """
    Render a datetime as the ISO 8601 storage form with microsecond precision.

    Example: "2023-10-27T10:30:00.123456Z"
    """
    return ensure_utc(value).strftime(_TIMESTAMP_FORMAT)


def parse_timestamp(raw: str) -> datetime:
    """
    Parse an ISO 8601 timestamp read from storage.

    Raises:
        SerializationFault: If the value is not a string or not valid ISO 8601.
    """
    if not isinstance(raw, str):
        raise SerializationFault(f"Timestamp must be a string, got {type(raw).__name__}: {raw!r}")
    text = raw.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise SerializationFault(f"Malformed timestamp {raw!r}: {e}") from e
    return ensure_utc(parsed)


def generate_note_id() -> str:
    return str(uuid.uuid4())

#
########################################################################################################################
#
# Models:


class ThemeMode(str, Enum):
    SYSTEM = "system"
    LIGHT = "light"
    DARK = "dark"


class FontFamily(str, Enum):
    SANS = "sans"
    SERIF = "serif"
    MONO = "mono"


class Note(BaseModel):
    """
    A single note record as stored on one replica.

    `version` is the only input to merge precedence: every local mutation
    increments it by one, and an incoming copy replaces the local row only
    when its version is strictly greater.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    title: str
    content: str
    folder: Optional[str] = None
    is_pinned: bool = False
    created_at: datetime
    updated_at: datetime
    version: int = Field(default=1, ge=1, le=MAX_VERSION)
    is_deleted: bool = False

    @field_validator("created_at", "updated_at")
    @classmethod
    def _normalise_timestamp(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @classmethod
    def new(cls, title: str, content: str, folder: Optional[str] = None) -> "Note":
        """Build a brand-new, unsaved note at version 1 with a fresh id."""
        now = utc_now()
        return cls(
            id=generate_note_id(),
            title=title,
            content=content,
            folder=folder,
            is_pinned=False,
            created_at=now,
            updated_at=now,
            version=1,
            is_deleted=False,
        )


DEFAULT_THEME_MODE = ThemeMode.SYSTEM
DEFAULT_ACCENT_HUE = 250
DEFAULT_FONT_FAMILY = FontFamily.SANS
DEFAULT_FONT_SIZE = 14


class UserSettings(BaseModel):
    """Local-only appearance preferences. One row per store, never merged."""
    theme_mode: ThemeMode = DEFAULT_THEME_MODE
    accent_hue: int = Field(default=DEFAULT_ACCENT_HUE, ge=0, le=360)
    font_family: FontFamily = DEFAULT_FONT_FAMILY
    font_size: int = Field(default=DEFAULT_FONT_SIZE, ge=1, le=255)

#
# End of note_models.py
#######################################################################################################################
