# reader/chapters.py
import math
from bisect import bisect_right
from typing import Iterable, Optional

from rsvplib.storage.models import Chapter


def normalize_chapters(
    chapters: Optional[Iterable[Chapter]],
    token_count: int,
) -> list[Chapter]:
    """
    Sanea una lista de capítulos contra la longitud real del libro.

    - descarta inicios no finitos
    - start en [0, token_count-1], end en [0, token_count] (token_count si falta)
    - orden ascendente por start; a igual start gana el primero
    - cada intervalo queda no vacío y acotado por el inicio del siguiente
    - título vacío → "Chapter k"

    Idempotente: normalizar una lista ya normalizada la deja igual.
    """
    if not chapters or token_count <= 0:
        return []

    clamped: list[tuple[str, int, int]] = []
    for chapter in chapters:
        start = _finite(chapter.start_token)
        if start is None:
            continue
        end = _finite(chapter.end_token)
        clamped.append((
            chapter.title or "",
            max(0, min(token_count - 1, math.floor(start))),
            max(0, min(token_count, math.floor(end))) if end is not None else token_count,
        ))

    # sort estable: entre duplicados conserva el orden de entrada
    clamped.sort(key=lambda c: c[1])

    normalized: list[Chapter] = []
    for i, (title, start, end) in enumerate(clamped):
        if normalized and normalized[-1].start_token == start:
            continue

        next_start = _next_distinct_start(clamped, i)
        bound = min(token_count, next_start) if next_start is not None else token_count
        declared = end or bound
        safe_end = max(start + 1, min(bound, declared))

        normalized.append(Chapter(
            title       = title.strip() or f"Chapter {len(normalized) + 1}",
            start_token = start,
            end_token   = safe_end,
        ))

    return normalized


def locate_chapter(chapters: list[Chapter], token_index: int) -> int:
    """
    Índice del último capítulo que empieza en o antes de token_index.
    Búsqueda binaria: se llama en cada tick de reproducción.
    -1 solo si no hay capítulos; antes del primero devuelve 0.
    """
    if not chapters:
        return -1
    position = bisect_right(chapters, token_index, key=lambda c: c.start_token)
    return max(0, position - 1)


def _next_distinct_start(clamped: list[tuple[str, int, int]], i: int) -> Optional[int]:
    start = clamped[i][1]
    for _, candidate, _ in clamped[i + 1:]:
        if candidate != start:
            return candidate
    return None


def _finite(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None
