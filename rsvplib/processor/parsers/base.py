from abc import ABC, abstractmethod
from typing import Callable, Optional

from rsvplib.processor.models import ExtractedBook
from rsvplib.storage.models import SourceType

# Recibe la fracción de lectura completada, en [0, 1]
ReadProgressCallback = Callable[[float], None]


class BaseParser(ABC):
    extensions: frozenset[str] = frozenset()
    source_type: SourceType = SourceType.TEXT
    # true si cada sección devuelta es un capítulo; si no, se une en "Full Text"
    chaptered: bool = False

    @abstractmethod
    def can_handle(self, file_path: str) -> bool:
        """Devuelve true si el parser puede manejar el archivo"""
        raise NotImplementedError

    @abstractmethod
    def parse(
        self,
        file_path: str,
        on_progress: Optional[ReadProgressCallback] = None,
    ) -> ExtractedBook:
        """Parsea el archivo y devuelve sus secciones legibles en orden"""
        raise NotImplementedError
