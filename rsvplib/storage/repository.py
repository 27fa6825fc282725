# storage/repository.py
import json
import logging
import math
from typing import Optional, Sequence

from rsvplib.processor.errors import StoreIoError
from rsvplib.storage.keys import (
    BOOK_LIST_KEY,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_WPM,
    GLOBAL_SETTINGS_KEY,
    TOKEN_CHUNK_PREFIX,
    reading_state_key,
    token_chunk_key,
    token_chunk_prefix,
)
from rsvplib.storage.kv import KeyValueStore, SqliteKeyValueStore
from rsvplib.storage.models import BookMeta, GlobalSettings, ReadingState

logger = logging.getLogger(__name__)


class Repository:
    """
    Única interfaz entre el resto de la aplicación y el almacén clave-valor.
    Recibe un store ya construido, o un db_path para abrir uno SQLite
    (":memory:" en los tests).

    Serializar importaciones, guardados de progreso y borrados de un mismo
    libro es responsabilidad del caller: aquí no hay locks.
    """

    def __init__(
        self,
        store:            Optional[KeyValueStore] = None,
        db_path:          str | None              = None,
        default_settings: Optional[GlobalSettings] = None,
    ):
        self._store = store or SqliteKeyValueStore(db_path)
        self._default_settings = default_settings or GlobalSettings(default_wpm=DEFAULT_WPM)

    @property
    def store(self) -> KeyValueStore:
        return self._store

    # ------------------------------------------------------------------
    # Books
    # ------------------------------------------------------------------

    def load_books(self) -> list[BookMeta]:
        """Índice de la biblioteca, más reciente primero. Índice corrupto → []."""
        raw = self._read_json(BOOK_LIST_KEY)
        if not isinstance(raw, list):
            return []

        books: list[BookMeta] = []
        for entry in raw:
            try:
                books.append(BookMeta.from_dict(entry))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Entrada de biblioteca descartada: %s", e)
        return sorted(books, key=lambda b: b.updated_at or 0, reverse=True)

    def get_book(self, book_id: str) -> BookMeta | None:
        return next((b for b in self.load_books() if b.id == book_id), None)

    def save_books(self, books: Sequence[BookMeta]) -> None:
        self._write_json(BOOK_LIST_KEY, [b.to_dict() for b in books])

    def upsert_book(self, meta: BookMeta) -> None:
        """
        Inserta o reemplaza por id. Nunca duplica.
        Las entradas que no se pueden decodificar se conservan tal cual.
        """
        entries = [e for e in self._raw_book_entries() if _entry_id(e) != meta.id]
        entries.insert(0, meta.to_dict())
        self._write_json(BOOK_LIST_KEY, entries)

    def remove_book(self, book_id: str) -> None:
        """Borra la entrada del índice, su ReadingState y todos sus chunks."""
        entries = [e for e in self._raw_book_entries() if _entry_id(e) != book_id]
        self._write_json(BOOK_LIST_KEY, entries)
        self.delete_reading_state(book_id)
        self.delete_token_chunks(book_id)

    def _raw_book_entries(self) -> list:
        raw = self._read_json(BOOK_LIST_KEY)
        return raw if isinstance(raw, list) else []

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def save_token_chunks(
        self,
        book_id:    str,
        tokens:     Sequence[str],
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> tuple[int, int]:
        """
        Parte los tokens en chunks de chunk_size y los escribe en orden.
        Devuelve (chunk_size, chunk_count).
        """
        if chunk_size < 1:
            raise ValueError(f"chunk_size debe ser >= 1 (recibido {chunk_size})")

        chunk_count = math.ceil(len(tokens) / chunk_size)
        for chunk_index in range(chunk_count):
            start = chunk_index * chunk_size
            chunk = list(tokens[start:start + chunk_size])
            self._write_json(token_chunk_key(book_id, chunk_index), chunk)

        logger.debug("Libro %s: %d chunks de %d tokens", book_id, chunk_count, chunk_size)
        return chunk_size, chunk_count

    def load_token_chunk(self, book_id: str, chunk_index: int) -> list[str] | None:
        """
        Lee un chunk. Ausente o corrupto → None, nunca una excepción:
        el lector tiene que poder seguir con un placeholder.
        """
        try:
            raw = self._read_json(token_chunk_key(book_id, chunk_index))
        except StoreIoError as e:
            logger.warning("Chunk %d del libro %s ilegible: %s", chunk_index, book_id, e)
            return None

        if not isinstance(raw, list) or not all(isinstance(t, str) for t in raw):
            if raw is not None:
                logger.warning("Chunk %d del libro %s corrupto", chunk_index, book_id)
            return None
        return raw

    def delete_token_chunks(self, book_id: str) -> None:
        prefix = token_chunk_prefix(book_id)
        keys = [k for k in self._store.list_keys() if k.startswith(prefix)]
        if keys:
            self._store.remove_many(keys)

    def purge_orphan_chunks(self) -> int:
        """
        Borra chunks de libros que no figuran en el índice (importaciones
        interrumpidas). Devuelve cuántas claves se eliminaron.
        """
        # también cuentan las entradas del índice que no se pueden decodificar
        known = {_entry_id(e) for e in self._raw_book_entries()}
        orphans = []
        for key in self._store.list_keys():
            if not key.startswith(TOKEN_CHUNK_PREFIX):
                continue
            book_id, _, _ = key[len(TOKEN_CHUNK_PREFIX):].rpartition("_")
            if book_id not in known:
                orphans.append(key)

        if orphans:
            self._store.remove_many(orphans)
            logger.info("%d chunks huérfanos eliminados", len(orphans))
        return len(orphans)

    # ------------------------------------------------------------------
    # Reading state
    # ------------------------------------------------------------------

    def load_reading_state(self, book_id: str) -> ReadingState | None:
        raw = self._read_json(reading_state_key(book_id))
        if not isinstance(raw, dict):
            return None
        try:
            return ReadingState.from_dict(raw)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("ReadingState del libro %s corrupto: %s", book_id, e)
            return None

    def save_reading_state(self, state: ReadingState) -> None:
        self._write_json(reading_state_key(state.book_id), state.to_dict())

    def delete_reading_state(self, book_id: str) -> None:
        self._store.remove(reading_state_key(book_id))

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def load_global_settings(self) -> GlobalSettings:
        raw = self._read_json(GLOBAL_SETTINGS_KEY)
        if isinstance(raw, dict):
            try:
                return GlobalSettings.from_dict(raw)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Settings globales corruptas, usando defaults: %s", e)
        return GlobalSettings(**self._default_settings.to_dict())

    def save_global_settings(self, settings: GlobalSettings) -> None:
        self._write_json(GLOBAL_SETTINGS_KEY, settings.to_dict())

    # ------------------------------------------------------------------
    # Serialización
    # ------------------------------------------------------------------

    def _read_json(self, key: str):
        """JSON decodificado, o None si la clave no existe o no es JSON válido."""
        raw = self._store.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            logger.warning("Valor no decodificable en '%s'", key)
            return None

    def _write_json(self, key: str, value) -> None:
        self._store.set(key, json.dumps(value, ensure_ascii=False).encode("utf-8"))

    # ------------------------------------------------------------------
    # Cleanup (para tests)
    # ------------------------------------------------------------------

    def close(self) -> None:
        self._store.close()


def _entry_id(entry) -> str | None:
    return entry.get("id") if isinstance(entry, dict) else None
