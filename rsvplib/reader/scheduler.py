# reader/scheduler.py
import asyncio
import logging
import re
from typing import Awaitable, Callable, Optional

from rsvplib.processor.tokenizer import PARAGRAPH_MARKER

logger = logging.getLogger(__name__)

# Multiplicadores sobre el tiempo base de un token
_PARAGRAPH_BONUS = 1.0
_HARD_PAUSE_BONUS = 0.7
_SOFT_PAUSE_BONUS = 0.3
_LONG_WORD_BONUS = 0.1
_LONG_WORD_CHARS = 12

_CLOSERS = r"[)\"'\]}”»]*"
_HARD_PAUSE_RE = re.compile(rf"[.!?]+{_CLOSERS}$")
_SOFT_PAUSE_RE = re.compile(rf"[;,:]+{_CLOSERS}$")
_NON_ALNUM_RE = re.compile(r"[\W_]+")


def compute_delay_ms(token: str, wpm: float, punctuation_pauses: bool) -> float:
    """
    Milisegundos que el token permanece en pantalla.

    Base = 60000 / wpm. Con pausas activas se suma al multiplicador:
    +1.0 marcador de párrafo, si no +0.7 fin de frase (. ! ?),
    si no +0.3 pausa suave (; , :); y aparte +0.1 si la palabra
    tiene más de 12 letras/dígitos.
    """
    base_ms = 60000 / max(1, wpm)
    if not punctuation_pauses:
        return base_ms

    multiplier = 1.0
    if token == PARAGRAPH_MARKER:
        multiplier += _PARAGRAPH_BONUS
    elif _HARD_PAUSE_RE.search(token):
        multiplier += _HARD_PAUSE_BONUS
    elif _SOFT_PAUSE_RE.search(token):
        multiplier += _SOFT_PAUSE_BONUS

    if len(_NON_ALNUM_RE.sub("", token)) > _LONG_WORD_CHARS:
        multiplier += _LONG_WORD_BONUS

    return base_ms * multiplier


class PlaybackScheduler:
    """
    Único temporizador vivo de una sesión de lectura.

    Guarda el handle de la tarea pendiente en un solo slot: cualquier cambio
    (play/pause, índice, velocidad, pausas) cancela primero esa tarea y solo
    después, si se sigue reproduciendo, programa la siguiente. Nunca hay dos
    tareas pendientes a la vez.

    Al vencer el temporizador avanza a index+1, avisa con on_advance y se
    reprograma. Si el token actual no se puede resolver (fin del libro o
    chunk aún no cargado) se detiene y avisa con on_finished.

    Si on_advance lanza, la reproducción se detiene sin tarea pendiente y
    el error pasa a on_error; sin on_error se relanza.

    Debe usarse desde dentro de un event loop de asyncio.
    """

    def __init__(
        self,
        resolve_token: Callable[[int], Optional[str]],
        on_advance:    Callable[[int], None],
        on_finished:   Callable[[], None],
        sleep:         Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_error:      Optional[Callable[[Exception], None]] = None,
    ):
        self._resolve_token = resolve_token
        self._on_advance    = on_advance
        self._on_finished   = on_finished
        self._sleep         = sleep
        self._on_error      = on_error

        self._task: Optional[asyncio.Task] = None
        self._playing = False
        self._index = 0
        self._wpm = 300
        self._punctuation_pauses = True

    # ------------------------------------------------------------------
    # Estado
    # ------------------------------------------------------------------

    @property
    def is_playing(self) -> bool:
        return self._playing

    @property
    def index(self) -> int:
        return self._index

    @property
    def has_pending(self) -> bool:
        return self._task is not None and not self._task.done()

    # ------------------------------------------------------------------
    # Cambios de dependencias: todos pasan por update()
    # ------------------------------------------------------------------

    def update(
        self,
        *,
        playing:            Optional[bool]  = None,
        index:              Optional[int]   = None,
        wpm:                Optional[float] = None,
        punctuation_pauses: Optional[bool]  = None,
    ) -> None:
        self.cancel()

        if playing is not None:
            self._playing = playing
        if index is not None:
            self._index = max(0, index)
        if wpm is not None:
            self._wpm = wpm
        if punctuation_pauses is not None:
            self._punctuation_pauses = punctuation_pauses

        if self._playing:
            self._schedule()

    def play(self, index: Optional[int] = None) -> None:
        self.update(playing=True, index=index)

    def pause(self) -> None:
        self.update(playing=False)

    def cancel(self) -> None:
        """Cancela la tarea pendiente, si la hay. Idempotente."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()

    def close(self) -> None:
        self._playing = False
        self.cancel()

    # ------------------------------------------------------------------
    # Internos
    # ------------------------------------------------------------------

    def _schedule(self) -> None:
        token = self._resolve_token(self._index)
        if token is None:
            logger.debug("Sin token en %d, reproducción terminada", self._index)
            self._playing = False
            self._on_finished()
            return

        delay_ms = compute_delay_ms(token, self._wpm, self._punctuation_pauses)
        self._task = asyncio.get_running_loop().create_task(
            self._fire(self._index, delay_ms)
        )

    async def _fire(self, index: int, delay_ms: float) -> None:
        await self._sleep(delay_ms / 1000)

        # el slot se libera antes del callback: si el host cambia algo
        # dentro de on_advance, update() no se cancela a sí mismo
        self._task = None
        self._index = index + 1
        try:
            self._on_advance(self._index)
        except Exception as e:
            logger.error("Fallo avanzando al token %d: %s", self._index, e)
            self._playing = False
            self.cancel()
            if self._on_error is None:
                raise
            self._on_error(e)
            return

        if self._playing and self._task is None:
            self._schedule()
