# rsvplib/importer.py
import asyncio
import logging
import random
import string
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from rsvplib.processor.errors import (
    EmptyInputError,
    ImportCancelledError,
    NoTokensProducedError,
    StoreIoError,
)
from rsvplib.processor.models import ExtractedBook, ImportPhase, ImportProgress
from rsvplib.processor.parsers.factory import ParserFactory
from rsvplib.processor.tokenizer import (
    PARAGRAPH_MARKER,
    build_preview,
    tokenize,
    tokenize_incremental,
)
from rsvplib.storage.keys import DEFAULT_CHUNK_SIZE
from rsvplib.storage.models import BookMeta, Chapter, ReadingState, SourceType
from rsvplib.storage.repository import Repository

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ImportProgress], None]
CancelCheck = Callable[[], bool]

# Cada cuántas secciones de un EPUB se cede el control al event loop
_EPUB_YIELD_EVERY = 6


@dataclass
class ImportedBook:
    meta:          BookMeta
    initial_state: ReadingState


class Importer:
    """
    Dirige la importación de extremo a extremo:
    reading (parser) → tokenizing → saving.

    Orden de escritura: primero todos los chunks, luego el ReadingState y por
    último el BookMeta, que es el punto de commit. Un libro sin BookMeta no
    existe para la biblioteca; si una escritura falla se intenta borrar lo
    que ya se escribió y el error se propaga.

    Las importaciones de un mismo libro deben serializarse en el caller.
    """

    def __init__(
        self,
        repo:           Repository,
        parser_factory: Optional[ParserFactory] = None,
        chunk_size:     int                     = DEFAULT_CHUNK_SIZE,
    ):
        if chunk_size < 1:
            raise ValueError(f"chunk_size debe ser >= 1 (recibido {chunk_size})")
        self._repo           = repo
        self._parser_factory = parser_factory or ParserFactory()
        self._chunk_size     = chunk_size

    async def import_file(
        self,
        file_path:     str,
        title:         Optional[str]              = None,
        on_progress:   Optional[ProgressCallback] = None,
        should_cancel: Optional[CancelCheck]      = None,
    ) -> ImportedBook:
        """
        Punto de entrada principal.

        Raises:
            FileNotFoundError: si el archivo no existe.
            UnsupportedFormatError: extensión sin parser.
            ImportFailedError (y subclases): el archivo no tiene texto legible.
            StoreIoError: fallo escribiendo en el almacén.
        """
        path = Path(file_path)
        if not path.is_file():
            raise FileNotFoundError(f"Archivo no encontrado: {file_path}")

        parser = self._parser_factory.get_parser(str(path))
        fallback_title = title or path.name

        _emit(on_progress, ImportPhase.READING, 0.05)
        book = parser.parse(
            str(path),
            on_progress=lambda p: _emit(on_progress, ImportPhase.READING, p),
        )
        _emit(on_progress, ImportPhase.READING, 1.0)
        await asyncio.sleep(0)
        _check_cancel(should_cancel)

        if parser.chaptered:
            return await self.import_sections(
                book, fallback_title, on_progress, should_cancel, source_type=parser.source_type,
            )

        text = "\n\n".join(section.text for section in book.sections)
        return await self.import_text(text, fallback_title, on_progress, should_cancel)

    async def import_text(
        self,
        text:          str,
        title:         str,
        on_progress:   Optional[ProgressCallback] = None,
        should_cancel: Optional[CancelCheck]      = None,
    ) -> ImportedBook:
        """Texto plano: un único capítulo 'Full Text' que cubre todos los tokens."""
        if not text.strip():
            raise EmptyInputError("Este archivo está vacío.")

        tokens = await tokenize_incremental(text, on_progress, should_cancel)
        if not tokens:
            raise NoTokensProducedError("No se pudo extraer texto legible de este archivo.")

        chapters = [Chapter(title="Full Text", start_token=0, end_token=len(tokens))]
        return self._commit(
            tokens        = tokens,
            title         = sanitize_title(title),
            source_type   = SourceType.TEXT,
            text_length   = len(text),
            chapters      = chapters,
            on_progress   = on_progress,
            should_cancel = should_cancel,
        )

    async def import_sections(
        self,
        book:          ExtractedBook,
        title:         str,
        on_progress:   Optional[ProgressCallback] = None,
        should_cancel: Optional[CancelCheck]      = None,
        source_type:   SourceType                 = SourceType.EPUB,
    ) -> ImportedBook:
        """
        Secciones de un libro con capítulos (EPUB u otro parser con
        chaptered=True): un capítulo por sección con tokens, y un
        marcador de párrafo entre secciones para que el texto de dos
        capítulos nunca se lea pegado.
        """
        sections = book.sections
        if not sections:
            raise EmptyInputError("No se pudo extraer texto legible de este EPUB.")

        tokens: list[str] = []
        chapters: list[Chapter] = []
        text_length = 0

        for i, section in enumerate(sections):
            section_tokens = tokenize(section.text)
            if section_tokens:
                if tokens:
                    tokens.append(PARAGRAPH_MARKER)
                    text_length += 2
                start = len(tokens)
                tokens.extend(section_tokens)
                chapters.append(Chapter(
                    title       = section.title or f"Chapter {len(chapters) + 1}",
                    start_token = start,
                    end_token   = len(tokens),
                ))
                text_length += len(section.text)

            _emit(on_progress, ImportPhase.TOKENIZING, (i + 1) / len(sections))
            if i % _EPUB_YIELD_EVERY == 0:
                await asyncio.sleep(0)
                _check_cancel(should_cancel)

        if not tokens:
            raise NoTokensProducedError("No se pudo extraer texto legible de este EPUB.")

        return self._commit(
            tokens        = tokens,
            title         = sanitize_title(book.title or title),
            source_type   = source_type,
            text_length   = text_length,
            chapters      = chapters,
            on_progress   = on_progress,
            should_cancel = should_cancel,
        )

    # ------------------------------------------------------------------
    # Persistencia
    # ------------------------------------------------------------------

    def _commit(
        self,
        tokens:        list[str],
        title:         str,
        source_type:   SourceType,
        text_length:   int,
        chapters:      list[Chapter],
        on_progress:   Optional[ProgressCallback],
        should_cancel: Optional[CancelCheck],
    ) -> ImportedBook:
        _check_cancel(should_cancel)

        book_id = make_book_id()
        settings = self._repo.load_global_settings()
        now = int(time.time() * 1000)

        _emit(on_progress, ImportPhase.SAVING, 0.2)
        try:
            chunk_size, chunk_count = self._repo.save_token_chunks(book_id, tokens, self._chunk_size)

            initial_state = ReadingState(
                book_id            = book_id,
                index              = 0,
                wpm                = settings.default_wpm,
                orp_enabled        = settings.default_orp_enabled,
                punctuation_pauses = settings.default_punctuation_pauses,
                last_read_at       = now,
            )
            self._repo.save_reading_state(initial_state)

            meta = BookMeta(
                id             = book_id,
                title          = title,
                source_type    = source_type,
                created_at     = now,
                updated_at     = now,
                text_length    = text_length,
                token_count    = len(tokens),
                chunk_size     = chunk_size,
                chunk_count    = chunk_count,
                preview        = build_preview(tokens),
                chapters       = chapters,
                last_opened_at = now,
            )
            self._repo.upsert_book(meta)

        except StoreIoError:
            logger.error("Fallo guardando '%s' (book_id=%s), limpiando chunks", title, book_id)
            self._discard(book_id)
            raise

        _emit(on_progress, ImportPhase.SAVING, 1.0)
        logger.info(
            "Importado '%s' (book_id=%s): %d tokens, %d chunks, %d capítulos",
            title, book_id, len(tokens), chunk_count, len(chapters),
        )
        return ImportedBook(meta=meta, initial_state=initial_state)

    def _discard(self, book_id: str) -> None:
        """
        Limpieza best-effort tras un fallo de escritura. El BookMeta nunca
        llegó al índice, así que solo quedan chunks y ReadingState.
        """
        try:
            self._repo.delete_token_chunks(book_id)
            self._repo.delete_reading_state(book_id)
        except StoreIoError as e:
            logger.warning(
                "No se pudieron borrar los restos de %s (%s); "
                "purge_orphan_chunks() los recogerá", book_id, e,
            )


# ------------------------------------------------------------------
# Funciones de módulo
# ------------------------------------------------------------------

_ID_ALPHABET = string.digits + string.ascii_lowercase


def make_book_id() -> str:
    """'<millis en base 36>_<8 caracteres aleatorios>'"""
    millis = int(time.time() * 1000)
    stamp = ""
    while millis:
        millis, digit = divmod(millis, 36)
        stamp = _ID_ALPHABET[digit] + stamp
    suffix = "".join(random.choices(_ID_ALPHABET, k=8))
    return f"{stamp or '0'}_{suffix}"


def sanitize_title(title: str) -> str:
    """Quita la extensión final; vacío → 'Untitled'."""
    stem = title.strip()
    if "." in stem:
        head, _, ext = stem.rpartition(".")
        if head and ext and " " not in ext:
            stem = head
    return stem.strip() or "Untitled"


def _emit(on_progress: Optional[ProgressCallback], phase: ImportPhase, progress: float) -> None:
    if on_progress:
        on_progress(ImportProgress(phase=phase, progress=min(1.0, progress)))


def _check_cancel(should_cancel: Optional[CancelCheck]) -> None:
    if should_cancel and should_cancel():
        raise ImportCancelledError("Importación cancelada.")
