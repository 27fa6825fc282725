# processor/parsers/archive.py
import io
import logging
import zipfile

from rsvplib.processor.errors import MalformedContainerError

logger = logging.getLogger(__name__)


class EpubArchive:
    """
    Lectura de entradas de un EPUB (zip) a partir de sus bytes.

    Las rutas se buscan primero tal cual y, si no existen, ignorando
    mayúsculas/minúsculas: hay EPUBs que declaran "Text/Ch1.xhtml" y
    empaquetan "text/ch1.xhtml".
    """

    def __init__(self, data: bytes):
        try:
            self._zip = zipfile.ZipFile(io.BytesIO(data))
        except zipfile.BadZipFile as e:
            raise MalformedContainerError(
                "EPUB inválido: el archivo no es un contenedor zip legible."
            ) from e

        self._names = {info.filename for info in self._zip.infolist() if not info.is_dir()}
        self._by_lower: dict[str, str] = {}
        for name in self._zip.namelist():
            if name in self._names:
                self._by_lower.setdefault(name.lower(), name)

    def resolve(self, path: str) -> str | None:
        """Nombre real de la entrada, o None si no existe ni sin distinguir mayúsculas."""
        normalized = path.replace("\\", "/")
        if normalized in self._names:
            return normalized
        return self._by_lower.get(normalized.lower())

    def exists(self, path: str) -> bool:
        return self.resolve(path) is not None

    def read_bytes(self, path: str) -> bytes | None:
        name = self.resolve(path)
        if name is None:
            return None
        return self._zip.read(name)

    def read_text(self, path: str) -> str | None:
        """Contenido decodificado: UTF-8 (con o sin BOM), latin-1 como fallback."""
        raw = self.read_bytes(path)
        if raw is None:
            return None
        try:
            return raw.decode("utf-8-sig")
        except UnicodeDecodeError:
            logger.debug("'%s' no es UTF-8, se decodifica como latin-1", path)
            return raw.decode("latin-1")

    def close(self) -> None:
        self._zip.close()
