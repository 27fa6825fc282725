# storage/kv.py
import logging
import sqlite3
from abc import ABC, abstractmethod
from typing import Iterable

from rsvplib.processor.errors import StoreIoError
from rsvplib.storage.db import get_connection, init_schema

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """
    Almacén opaco clave → bytes.
    El resto del sistema solo conoce estas cinco operaciones.
    """

    @abstractmethod
    def get(self, key: str) -> bytes | None: ...

    @abstractmethod
    def set(self, key: str, value: bytes) -> None: ...

    @abstractmethod
    def remove(self, key: str) -> None: ...

    @abstractmethod
    def remove_many(self, keys: Iterable[str]) -> None: ...

    @abstractmethod
    def list_keys(self) -> list[str]: ...

    def close(self) -> None:
        """Libera recursos. No-op por defecto."""


class MemoryKeyValueStore(KeyValueStore):
    """Implementación en memoria. Suficiente para tests y sesiones efímeras."""

    def __init__(self):
        self._data: dict[str, bytes] = {}

    def get(self, key: str) -> bytes | None:
        return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self._data[key] = bytes(value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def remove_many(self, keys: Iterable[str]) -> None:
        for key in list(keys):
            self._data.pop(key, None)

    def list_keys(self) -> list[str]:
        return list(self._data)


class SqliteKeyValueStore(KeyValueStore):
    """
    Almacén persistente sobre una tabla kv de SQLite.
    Recibe un db_path para facilitar el testing con :memory:.

    Cualquier sqlite3.Error se re-lanza como StoreIoError: el caller decide
    si reintenta. Aquí no se reintenta nada.
    """

    def __init__(self, db_path: str | None = None):
        self._conn = get_connection(db_path)
        init_schema(self._conn)

    def get(self, key: str) -> bytes | None:
        try:
            row = self._conn.execute(
                "SELECT value FROM kv WHERE key = ?", (key,)
            ).fetchone()
        except sqlite3.Error as e:
            raise StoreIoError(f"No se pudo leer '{key}': {e}") from e
        if not row:
            return None
        value = row["value"]
        return value.encode("utf-8") if isinstance(value, str) else bytes(value)

    def set(self, key: str, value: bytes) -> None:
        try:
            with self._conn:
                self._conn.execute(
                    """
                    INSERT INTO kv (key, value) VALUES (?, ?)
                    ON CONFLICT (key) DO UPDATE SET value = excluded.value
                    """,
                    (key, sqlite3.Binary(value)),
                )
        except sqlite3.Error as e:
            raise StoreIoError(f"No se pudo escribir '{key}': {e}") from e

    def remove(self, key: str) -> None:
        self.remove_many([key])

    def remove_many(self, keys: Iterable[str]) -> None:
        rows = [(key,) for key in keys]
        if not rows:
            return
        try:
            with self._conn:
                self._conn.executemany("DELETE FROM kv WHERE key = ?", rows)
        except sqlite3.Error as e:
            raise StoreIoError(f"No se pudieron borrar {len(rows)} claves: {e}") from e
        logger.debug("%d claves eliminadas", len(rows))

    def list_keys(self) -> list[str]:
        try:
            rows = self._conn.execute("SELECT key FROM kv ORDER BY key").fetchall()
        except sqlite3.Error as e:
            raise StoreIoError(f"No se pudieron listar las claves: {e}") from e
        return [r["key"] for r in rows]

    def close(self) -> None:
        self._conn.close()
