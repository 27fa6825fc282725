# processor/tokenizer.py
import asyncio
import re
from typing import Callable, Optional

from rsvplib.processor.errors import ImportCancelledError
from rsvplib.processor.models import ImportPhase, ImportProgress

PARAGRAPH_MARKER = "\n"
PREVIEW_PARAGRAPH = "¶"

# Cada cuántos párrafos se cede el control en la variante incremental
_YIELD_EVERY = 8

# "letra o dígito" = carácter de palabra sin el guion bajo
_ALNUM = r"[^\W_]"

# Gramática de tokens, en orden de prioridad:
#   1. palabra (con compuestos unidos por guion/apóstrofo)
#      + puntuación de cierre de frase opcional + comillas/paréntesis de cierre opcionales
#   2. racha de aperturas: ( [ { “ " «
#   3. cualquier carácter no-espacio suelto
_TOKEN_RE = re.compile(
    rf"{_ALNUM}+(?:[\-’']{_ALNUM}+)*(?:[.,!?;:…]+)?(?:[”\"')\]}}»]+)?"
    r"|[(\[{“\"«]+"
    r"|\S"
)

_LINE_ENDINGS_RE  = re.compile(r"\r\n?")
_HORIZONTAL_WS_RE = re.compile(r"[\t\f\v ]+")
_EXTRA_BREAKS_RE  = re.compile(r"\n{3,}")
_PARAGRAPH_RE     = re.compile(r"\n{2,}")

ProgressCallback = Callable[[ImportProgress], None]


def normalize_text(text: str) -> str:
    """Saltos de línea unificados, espacios colapsados, máximo una línea en blanco."""
    text = _LINE_ENDINGS_RE.sub("\n", text)
    text = _HORIZONTAL_WS_RE.sub(" ", text)
    text = _EXTRA_BREAKS_RE.sub("\n\n", text)
    return text.strip()


def split_paragraphs(normalized: str) -> list[str]:
    if not normalized:
        return []
    return _PARAGRAPH_RE.split(normalized)


def tokenize_paragraph(paragraph: str) -> list[str]:
    """Tokens de un único párrafo. Los saltos simples cuentan como espacio."""
    prepared = paragraph.replace("\n", " ").strip()
    if not prepared:
        return []
    return _TOKEN_RE.findall(prepared)


def tokenize(text: str, paragraph_markers: bool = True) -> list[str]:
    """
    Convierte texto en la secuencia de tokens de lectura.

    Con paragraph_markers=True se inserta PARAGRAPH_MARKER entre párrafos
    consecutivos (nunca al principio ni al final). Con False los párrafos
    se aplanan y la salida no contiene marcadores.
    """
    tokens: list[str] = []
    paragraphs = split_paragraphs(normalize_text(text))

    for i, paragraph in enumerate(paragraphs):
        tokens.extend(tokenize_paragraph(paragraph))
        if paragraph_markers and i < len(paragraphs) - 1:
            tokens.append(PARAGRAPH_MARKER)

    return tokens


async def tokenize_incremental(
    text:          str,
    on_progress:   Optional[ProgressCallback]   = None,
    should_cancel: Optional[Callable[[], bool]] = None,
) -> list[str]:
    """
    Misma salida que tokenize(), token a token, pero procesando párrafo a
    párrafo y cediendo el control al event loop cada pocos párrafos.

    El progreso reportado es monótono y termina siempre en exactamente 1.

    Raises:
        ImportCancelledError: si should_cancel() devuelve True en un punto de cesión.
    """
    paragraphs = split_paragraphs(normalize_text(text))
    tokens: list[str] = []
    total = len(paragraphs)

    for i, paragraph in enumerate(paragraphs):
        tokens.extend(tokenize_paragraph(paragraph))
        if i < total - 1:
            tokens.append(PARAGRAPH_MARKER)

        if i % _YIELD_EVERY == 0:
            _report(on_progress, (i + 1) / total)
            await asyncio.sleep(0)
            if should_cancel and should_cancel():
                raise ImportCancelledError("Importación cancelada durante la tokenización.")

    _report(on_progress, 1.0)
    return tokens


def build_preview(tokens: list[str], max_tokens: int = 18) -> str:
    """Primeros tokens en una sola línea; los saltos de párrafo se muestran como ¶."""
    shown = (PREVIEW_PARAGRAPH if t == PARAGRAPH_MARKER else t for t in tokens[:max_tokens])
    preview = " ".join(shown)
    return f"{preview[:177]}..." if len(preview) > 180 else preview


def estimated_seconds(token_count: int, wpm: float) -> float:
    return token_count / max(1, wpm) * 60


def _report(on_progress: Optional[ProgressCallback], progress: float) -> None:
    if on_progress:
        on_progress(ImportProgress(phase=ImportPhase.TOKENIZING, progress=progress))
