import os
from typing import Optional

from rsvplib.processor.models import ExtractedBook, ExtractedSection
from .base import BaseParser, ReadProgressCallback

_SUPPORTED_EXTENSIONS = frozenset({'.txt', '.md'})

FULL_TEXT_TITLE = "Full Text"


class TxtParser(BaseParser):
    """
    Parser para archivos .txt y .md.

    El texto entra entero como una única sección ("Full Text"): los
    párrafos los separa después el tokenizer. El título del libro sale
    del nombre del archivo, así que aquí no se declara ninguno.
    """

    extensions = _SUPPORTED_EXTENSIONS

    def can_handle(self, file_path: str) -> bool:
        _, ext = os.path.splitext(file_path)
        return ext.lower() in _SUPPORTED_EXTENSIONS

    def parse(
        self,
        file_path: str,
        on_progress: Optional[ReadProgressCallback] = None,
    ) -> ExtractedBook:
        if on_progress:
            on_progress(0.1)
        raw = self._read_file(file_path)
        if on_progress:
            on_progress(1.0)

        return ExtractedBook(
            source_path=file_path,
            sections=[ExtractedSection(title=FULL_TEXT_TITLE, text=raw)],
            title=None,
        )

    # ------------------------------------------------------------------ #
    #  Helpers privados                                                    #
    # ------------------------------------------------------------------ #

    def _read_file(self, file_path: str) -> str:
        """Lee el archivo intentando UTF-8 primero, latin-1 como fallback."""
        try:
            with open(file_path, 'r', encoding='utf-8-sig') as f:
                return f.read()
        except UnicodeDecodeError:
            with open(file_path, 'r', encoding='latin-1') as f:
                return f.read()
