from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class ImportPhase(Enum):
    READING    = "reading"
    TOKENIZING = "tokenizing"
    SAVING     = "saving"


@dataclass(frozen=True)
class ImportProgress:
    """Lo que recibe el callback de progreso: fase + fracción en [0, 1]."""
    phase: ImportPhase
    progress: float


@dataclass
class ExtractedSection:
    """Una sección legible: un documento del spine o el texto completo de un .txt"""
    title: str
    text: str


@dataclass
class ExtractedBook:
    """Lo que sale de cualquier Parser: secciones en orden de lectura + metadata"""
    source_path: str
    sections: list[ExtractedSection] = field(default_factory=list)
    title: Optional[str] = None   # título declarado por el propio documento, si lo hay
