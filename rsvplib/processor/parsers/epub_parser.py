import logging
import os
from enum import Enum
from pathlib import Path
from typing import Optional

from rsvplib.processor.errors import (
    ImportFailedError,
    MalformedPackageError,
    NoReadableSectionsError,
)
from rsvplib.processor.models import ExtractedBook, ExtractedSection
from rsvplib.storage.models import SourceType
from .archive import EpubArchive
from .base import BaseParser, ReadProgressCallback
from .markup import as_inline_text, extract_markup_title, fallback_chapter_title, html_to_text
from .package import CONTAINER_PATH, parse_container, parse_package, reading_order

logger = logging.getLogger(__name__)

_SUPPORTED_EXTENSIONS = frozenset({'.epub'})

# Tramo del progreso de lectura reservado a la extracción de secciones
_SECTIONS_START = 0.4


class ExtractionState(Enum):
    UNOPENED           = "unopened"
    CONTAINER_READ     = "container_read"
    PACKAGE_READ       = "package_read"
    SECTIONS_EXTRACTED = "sections_extracted"
    FAILED             = "failed"


class EpubExtractor:
    """
    Extrae las secciones legibles de un EPUB en orden de lectura.

    Un extractor por archivo; recorre
    UNOPENED → CONTAINER_READ → PACKAGE_READ → SECTIONS_EXTRACTED
    y queda en FAILED ante cualquier error estructural.

    Estrategia de sección:
      - Cada documento legible del spine = una sección.
      - El documento de navegación nunca es una sección.
      - Secciones sin texto tras limpiar el markup se descartan.
    """

    def __init__(self, data: bytes):
        self._data = data
        self.state = ExtractionState.UNOPENED

    def extract(self, on_progress: Optional[ReadProgressCallback] = None) -> ExtractedBook:
        try:
            return self._run(on_progress)
        except ImportFailedError:
            self.state = ExtractionState.FAILED
            raise

    def _run(self, on_progress: Optional[ReadProgressCallback]) -> ExtractedBook:
        _report(on_progress, 0.2)
        archive = EpubArchive(self._data)
        try:
            # ── Paso 1: container.xml → ruta del OPF ─────────────────────
            package_path = parse_container(archive.read_bytes(CONTAINER_PATH))
            self.state = ExtractionState.CONTAINER_READ
            _report(on_progress, _SECTIONS_START)

            # ── Paso 2: OPF → metadata, manifest, spine ──────────────────
            package_xml = archive.read_bytes(package_path)
            if package_xml is None:
                raise MalformedPackageError(
                    "EPUB inválido: no se pudo leer el documento de paquete."
                )
            package = parse_package(package_xml, package_path)
            self.state = ExtractionState.PACKAGE_READ

            # ── Paso 3: orden de lectura ─────────────────────────────────
            spine = reading_order(package)
            if not spine:
                raise NoReadableSectionsError(
                    "Este EPUB no contiene documentos de capítulo legibles."
                )
            logger.debug("EPUB '%s': %d secciones en el spine", package.title, len(spine))

            # ── Paso 4: markup → texto ───────────────────────────────────
            sections: list[ExtractedSection] = []
            for i, entry in enumerate(spine):
                markup = archive.read_text(entry.path)
                if markup is None:
                    logger.warning("Sección '%s' declarada pero ausente del archivo", entry.path)
                else:
                    text = html_to_text(markup)
                    if text:
                        sections.append(ExtractedSection(
                            title=self._section_title(markup, entry.title_hint, entry.path, i),
                            text=text,
                        ))
                    else:
                        logger.debug("Sección '%s' vacía, descartada", entry.path)

                _report(on_progress, _SECTIONS_START + (i + 1) / len(spine) * (1 - _SECTIONS_START))
        finally:
            archive.close()

        self.state = ExtractionState.SECTIONS_EXTRACTED
        return ExtractedBook(source_path="", sections=sections, title=package.title)

    @staticmethod
    def _section_title(markup: str, title_hint: Optional[str], path: str, index: int) -> str:
        title = extract_markup_title(markup)
        if title:
            return title
        hint = as_inline_text(title_hint or "")
        if hint:
            return hint
        return fallback_chapter_title(path, index)


class EpubParser(BaseParser):
    """
    Parser para archivos .epub.

    Lee el zip directamente (container.xml → OPF → spine) en lugar de
    delegar en una librería de EPUB: la resolución del orden de lectura y
    los errores que ve el usuario dependen de cada uno de esos pasos.
    """

    extensions  = _SUPPORTED_EXTENSIONS
    source_type = SourceType.EPUB
    chaptered   = True

    def can_handle(self, file_path: str) -> bool:
        _, ext = os.path.splitext(file_path)
        return ext.lower() in _SUPPORTED_EXTENSIONS

    def parse(
        self,
        file_path: str,
        on_progress: Optional[ReadProgressCallback] = None,
    ) -> ExtractedBook:
        _report(on_progress, 0.05)
        book = self.parse_bytes(Path(file_path).read_bytes(), on_progress)
        book.source_path = file_path
        return book

    def parse_bytes(
        self,
        data: bytes,
        on_progress: Optional[ReadProgressCallback] = None,
    ) -> ExtractedBook:
        return EpubExtractor(data).extract(on_progress)


def _report(on_progress: Optional[ReadProgressCallback], progress: float) -> None:
    if on_progress:
        on_progress(min(1.0, progress))
