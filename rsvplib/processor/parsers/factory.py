import os
from typing import Optional

from rsvplib.processor.errors import UnsupportedFormatError
from rsvplib.processor.models import ExtractedBook
from .base import BaseParser, ReadProgressCallback
from .txt_parser import TxtParser
from .epub_parser import EpubParser


class ParserFactory:
    """
    Registro central de parsers.

    Uso básico:
        book = ParserFactory.parse_file("/ruta/al/libro.epub")

    Uso con parser registrado externamente:
        factory = ParserFactory()
        factory.register(MiParserCustom())
        book = factory.parse("/ruta/al/libro.fb2")

    Los parsers se evalúan en orden de registro.
    El primero que responda True a can_handle() gana.
    """

    # Parsers disponibles por defecto, en orden de prioridad
    _DEFAULT_PARSERS: list[BaseParser] = [
        EpubParser(),
        TxtParser(),
    ]

    def __init__(self):
        self._parsers: list[BaseParser] = list(self._DEFAULT_PARSERS)

    def register(self, parser: BaseParser) -> None:
        """Registra un parser adicional al inicio de la lista (mayor prioridad)."""
        self._parsers.insert(0, parser)

    def get_parser(self, file_path: str) -> BaseParser:
        """
        Raises:
            UnsupportedFormatError: si ningún parser puede manejarlo.
        """
        for parser in self._parsers:
            if parser.can_handle(file_path):
                return parser

        ext = os.path.splitext(file_path)[1].lower()
        raise UnsupportedFormatError(
            f"Formato '{ext}' no soportado. "
            f"Formatos disponibles: {self.supported_extensions()}"
        )

    def parse(
        self,
        file_path: str,
        on_progress: Optional[ReadProgressCallback] = None,
    ) -> ExtractedBook:
        """
        Detecta el parser correcto para el archivo y devuelve un ExtractedBook.

        Raises:
            FileNotFoundError: si el archivo no existe.
            UnsupportedFormatError: si ningún parser puede manejarlo.
        """
        if not os.path.isfile(file_path):
            raise FileNotFoundError(f"Archivo no encontrado: {file_path}")
        return self.get_parser(file_path).parse(file_path, on_progress)

    def supported_extensions(self) -> str:
        exts: set[str] = set()
        for parser in self._parsers:
            exts.update(parser.extensions)
        return ", ".join(sorted(exts))

    # ------------------------------------------------------------------ #
    #  Método de clase para uso rápido sin instanciar                     #
    # ------------------------------------------------------------------ #

    @classmethod
    def parse_file(cls, file_path: str) -> ExtractedBook:
        """Shortcut: ParserFactory.parse_file('libro.epub')"""
        return cls().parse(file_path)
