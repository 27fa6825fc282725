# storage/models.py
import math
from dataclasses import dataclass, field, asdict
from typing import Optional
from enum import Enum


class SourceType(Enum):
    TEXT = "text"
    EPUB = "epub"


@dataclass
class Chapter:
    """Intervalo semiabierto [start_token, end_token) sobre la secuencia de tokens."""
    title:       str
    start_token: int
    end_token:   int

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: dict) -> "Chapter":
        # Los límites pueden venir rotos; chapters.normalize_chapters los sanea.
        return cls(
            title       = str(raw.get("title") or ""),
            start_token = _as_number(raw.get("start_token")),
            end_token   = _as_number(raw.get("end_token")),
        )


@dataclass
class BookMeta:
    id:             str
    title:          str
    source_type:    SourceType
    created_at:     int
    updated_at:     int
    text_length:    int
    token_count:    int
    chunk_size:     int
    chunk_count:    int
    preview:        str
    chapters:       list[Chapter]  = field(default_factory=list)
    last_opened_at: Optional[int]  = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["source_type"] = self.source_type.value
        return data

    @classmethod
    def from_dict(cls, raw: dict) -> "BookMeta":
        return cls(
            id             = str(raw["id"]),
            title          = str(raw.get("title") or "Untitled"),
            source_type    = SourceType(raw.get("source_type", SourceType.TEXT.value)),
            created_at     = int(raw.get("created_at") or 0),
            updated_at     = int(raw.get("updated_at") or 0),
            text_length    = int(raw.get("text_length") or 0),
            token_count    = int(raw.get("token_count") or 0),
            chunk_size     = int(raw.get("chunk_size") or 0),
            chunk_count    = int(raw.get("chunk_count") or 0),
            preview        = str(raw.get("preview") or ""),
            chapters       = [Chapter.from_dict(c) for c in raw.get("chapters") or []
                              if isinstance(c, dict)],
            last_opened_at = raw.get("last_opened_at"),
        )


@dataclass
class ReadingState:
    book_id:            str
    index:              int
    wpm:                int
    orp_enabled:        bool
    punctuation_pauses: bool
    last_read_at:       int

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: dict) -> "ReadingState":
        return cls(
            book_id            = str(raw["book_id"]),
            index              = max(0, int(raw.get("index") or 0)),
            wpm                = max(1, int(raw.get("wpm") or 1)),
            orp_enabled        = bool(raw.get("orp_enabled", True)),
            punctuation_pauses = bool(raw.get("punctuation_pauses", True)),
            last_read_at       = int(raw.get("last_read_at") or 0),
        )


@dataclass
class GlobalSettings:
    default_wpm:                int
    default_orp_enabled:        bool = True
    default_punctuation_pauses: bool = True

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: dict) -> "GlobalSettings":
        return cls(
            default_wpm                = max(1, int(raw["default_wpm"])),
            default_orp_enabled        = bool(raw.get("default_orp_enabled", True)),
            default_punctuation_pauses = bool(raw.get("default_punctuation_pauses", True)),
        )


def _as_number(value):
    """Entero si el valor es un número finito; NaN en cualquier otro caso."""
    if isinstance(value, bool):
        return math.nan
    try:
        number = float(value)
    except (TypeError, ValueError):
        return math.nan
    return math.floor(number) if math.isfinite(number) else math.nan
