# reader/session.py
import logging
import time
from collections import OrderedDict
from typing import Awaitable, Callable, Optional

from rsvplib.processor.tokenizer import estimated_seconds
from rsvplib.reader.chapters import locate_chapter, normalize_chapters
from rsvplib.reader.scheduler import PlaybackScheduler
from rsvplib.storage.models import BookMeta, Chapter, ReadingState
from rsvplib.storage.repository import Repository
from rsvplib.utils.format import format_percent

logger = logging.getLogger(__name__)

CACHE_CHUNKS = 4
PLACEHOLDER_TOKEN = "..."

# Umbrales de guardado automático del progreso
_PERSIST_EVERY_SECONDS = 3.0
_PERSIST_EVERY_TOKENS = 15


class ChunkCache:
    """
    Ventana acotada de chunks residentes, por índice de chunk.
    Al superar la capacidad se expulsa el insertado hace más tiempo;
    una lectura no cambia el orden.
    """

    def __init__(self, capacity: int = CACHE_CHUNKS):
        if capacity < 1:
            raise ValueError("capacity debe ser >= 1")
        self._capacity = capacity
        self._chunks: OrderedDict[int, list[str]] = OrderedDict()

    def get(self, chunk_index: int) -> list[str] | None:
        return self._chunks.get(chunk_index)

    def put(self, chunk_index: int, chunk: list[str]) -> None:
        self._chunks[chunk_index] = chunk
        while len(self._chunks) > self._capacity:
            evicted, _ = self._chunks.popitem(last=False)
            logger.debug("Chunk %d expulsado de la caché", evicted)

    def clear(self) -> None:
        self._chunks.clear()

    def indexes(self) -> list[int]:
        return list(self._chunks)

    def __contains__(self, chunk_index: int) -> bool:
        return chunk_index in self._chunks

    def __len__(self) -> int:
        return len(self._chunks)


class ReadingSession:
    """
    Una sesión de lectura de un libro: cursor, ajustes, caché de chunks y
    el único temporizador de reproducción.

    Todo el estado mutable vive aquí; el scheduler solo recibe las
    funciones de resolución y avance de esta sesión.

    Los hosts (CLI, UI) escuchan con on_token/on_finished y transmiten las
    señales de ciclo de vida llamando a on_inactive() y close(). Si un
    guardado falla durante la reproducción, esta se detiene, se llama a
    on_finished y el error queda en last_error.
    """

    def __init__(
        self,
        repo:        Repository,
        book:        BookMeta,
        state:       ReadingState,
        cache_size:  int                                        = CACHE_CHUNKS,
        on_token:    Optional[Callable[[int, Optional[str]], None]] = None,
        on_finished: Optional[Callable[[], None]]               = None,
        sleep:       Optional[Callable[[float], Awaitable[None]]] = None,
        clock:       Callable[[], float]                        = time.time,
    ):
        self._repo  = repo
        self._book  = book
        self._state = state
        self._cache = ChunkCache(cache_size)
        self._clock = clock
        self._chapters = normalize_chapters(book.chapters, book.token_count)

        self.on_token    = on_token
        self.on_finished = on_finished
        self.last_error: Optional[Exception] = None

        scheduler_kwargs = {"sleep": sleep} if sleep else {}
        self._scheduler = PlaybackScheduler(
            resolve_token = self.resolve_token,
            on_advance    = self._handle_advance,
            on_finished   = self._handle_finished,
            on_error      = self._handle_error,
            **scheduler_kwargs,
        )
        self._scheduler.update(
            index              = state.index,
            wpm                = state.wpm,
            punctuation_pauses = state.punctuation_pauses,
        )

        self._last_persist_at    = clock()
        self._last_persist_index = state.index

    @classmethod
    def open(cls, repo: Repository, book_id: str, **kwargs) -> "ReadingSession":
        """
        Carga libro + ReadingState (o uno nuevo con los ajustes globales)
        y deja cargados los chunks alrededor del cursor.

        Raises:
            LookupError: si el libro no está en la biblioteca.
        """
        book = repo.get_book(book_id)
        if book is None:
            raise LookupError(f"Libro no encontrado: {book_id}")

        state = repo.load_reading_state(book_id)
        if state is None:
            settings = repo.load_global_settings()
            state = ReadingState(
                book_id            = book_id,
                index              = 0,
                wpm                = settings.default_wpm,
                orp_enabled        = settings.default_orp_enabled,
                punctuation_pauses = settings.default_punctuation_pauses,
                last_read_at       = _now_ms(),
            )

        state.index = _clamp(state.index, book.token_count)
        session = cls(repo, book, state, **kwargs)
        session.ensure_chunk(0)
        session.prime(state.index)
        return session

    # ------------------------------------------------------------------
    # Propiedades
    # ------------------------------------------------------------------

    @property
    def book(self) -> BookMeta:
        return self._book

    @property
    def chapters(self) -> list[Chapter]:
        return self._chapters

    @property
    def index(self) -> int:
        return self._state.index

    @property
    def wpm(self) -> int:
        return self._state.wpm

    @property
    def orp_enabled(self) -> bool:
        return self._state.orp_enabled

    @property
    def punctuation_pauses(self) -> bool:
        return self._state.punctuation_pauses

    @property
    def is_playing(self) -> bool:
        return self._scheduler.is_playing

    @property
    def cache(self) -> ChunkCache:
        return self._cache

    @property
    def scheduler(self) -> PlaybackScheduler:
        return self._scheduler

    # ------------------------------------------------------------------
    # Acceso a tokens
    # ------------------------------------------------------------------

    def ensure_chunk(self, chunk_index: int) -> list[str] | None:
        """Chunk desde la caché o desde el almacén. Fuera de rango o ilegible → None."""
        if chunk_index < 0 or chunk_index >= self._book.chunk_count:
            return None

        cached = self._cache.get(chunk_index)
        if cached is not None:
            return cached

        loaded = self._repo.load_token_chunk(self._book.id, chunk_index)
        if loaded is not None:
            self._cache.put(chunk_index, loaded)
        return loaded

    def prime(self, token_index: int) -> None:
        """Carga el chunk del índice y el siguiente, para no frenar a mitad de lectura."""
        if self._book.chunk_size <= 0:
            return
        chunk_index = token_index // self._book.chunk_size
        self.ensure_chunk(chunk_index)
        self.ensure_chunk(chunk_index + 1)

    def resolve_token(self, token_index: int) -> str | None:
        """Token en token_index solo si su chunk ya está en caché. Nunca bloquea."""
        if token_index < 0 or self._book.chunk_size <= 0:
            return None
        chunk = self._cache.get(token_index // self._book.chunk_size)
        if chunk is None:
            return None
        offset = token_index % self._book.chunk_size
        return chunk[offset] if offset < len(chunk) else None

    def current_token(self) -> str:
        token = self.resolve_token(self.index)
        return PLACEHOLDER_TOKEN if token is None else token

    # ------------------------------------------------------------------
    # Controles
    # ------------------------------------------------------------------

    def play(self) -> None:
        if self._book.token_count <= 0:
            return
        if self.index >= self._book.token_count - 1:
            self._set_index(0)
        self.last_error = None
        self.prime(self.index)
        self._scheduler.play(self.index)

    def pause(self) -> None:
        self._scheduler.pause()

    def toggle_play(self) -> None:
        if self.is_playing:
            self.pause()
        else:
            self.play()

    def seek(self, token_index: int) -> None:
        self._set_index(_clamp(token_index, self._book.token_count))
        self.prime(self.index)
        self._scheduler.update(index=self.index)
        self._notify()

    def jump(self, delta: int) -> None:
        self.seek(self.index + delta)

    def seek_chapter(self, chapter_index: int) -> None:
        if 0 <= chapter_index < len(self._chapters):
            self.seek(self._chapters[chapter_index].start_token)

    def set_wpm(self, wpm: int) -> None:
        if wpm <= 0:
            raise ValueError(f"wpm debe ser positivo (recibido {wpm})")
        self._state.wpm = int(wpm)
        self._scheduler.update(wpm=self._state.wpm)

    def set_punctuation_pauses(self, enabled: bool) -> None:
        self._state.punctuation_pauses = enabled
        self._scheduler.update(punctuation_pauses=enabled)

    def set_orp_enabled(self, enabled: bool) -> None:
        self._state.orp_enabled = enabled

    # ------------------------------------------------------------------
    # Capítulos y progreso
    # ------------------------------------------------------------------

    def current_chapter_index(self) -> int:
        return locate_chapter(self._chapters, self.index)

    def current_chapter(self) -> Chapter | None:
        idx = self.current_chapter_index()
        return self._chapters[idx] if idx >= 0 else None

    def progress_percent(self) -> str:
        consumed = min(self.index + 1, self._book.token_count)
        return format_percent(consumed, self._book.token_count)

    def remaining_seconds(self) -> float:
        remaining = max(self._book.token_count - self.index - 1, 0)
        return estimated_seconds(remaining, self.wpm)

    # ------------------------------------------------------------------
    # Persistencia y ciclo de vida
    # ------------------------------------------------------------------

    def snapshot(self) -> ReadingState:
        return ReadingState(**self._state.to_dict())

    def maybe_persist(self) -> bool:
        """Guarda si pasaron más de 3 s o el cursor se movió 15+ tokens."""
        now = self._clock()
        by_time = now - self._last_persist_at > _PERSIST_EVERY_SECONDS
        by_jump = abs(self.index - self._last_persist_index) >= _PERSIST_EVERY_TOKENS
        if by_time or by_jump:
            self.persist_now()
            return True
        return False

    def persist_now(self) -> None:
        now_ms = _now_ms()
        self._state.last_read_at = now_ms
        self._repo.save_reading_state(self.snapshot())

        self._book.updated_at = now_ms
        self._book.last_opened_at = now_ms
        self._repo.upsert_book(self._book)

        self._last_persist_at = self._clock()
        self._last_persist_index = self.index

    def on_inactive(self) -> None:
        """Señal de ciclo de vida: la app dejó de estar activa."""
        self.pause()
        self.persist_now()

    def close(self) -> None:
        self._scheduler.close()
        self.persist_now()
        self._cache.clear()

    # ------------------------------------------------------------------
    # Callbacks del scheduler
    # ------------------------------------------------------------------

    def _handle_advance(self, next_index: int) -> None:
        if next_index >= self._book.token_count:
            self._scheduler.pause()
            self._set_index(max(0, self._book.token_count - 1))
            self._handle_finished()
            return

        self._set_index(next_index)
        self.prime(next_index)
        self._notify()
        self.maybe_persist()

    def _handle_finished(self) -> None:
        if self.on_finished:
            self.on_finished()

    def _handle_error(self, error: Exception) -> None:
        """La reproducción ya está parada; el host lo ve en last_error al terminar."""
        self.last_error = error
        self._handle_finished()

    def _set_index(self, index: int) -> None:
        self._state.index = index

    def _notify(self) -> None:
        if self.on_token:
            self.on_token(self.index, self.resolve_token(self.index))


def _clamp(index: int, token_count: int) -> int:
    return max(0, min(max(0, token_count - 1), index))


def _now_ms() -> int:
    return int(time.time() * 1000)
