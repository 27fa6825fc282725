# reader/orp.py
import math
import re
from dataclasses import dataclass
from typing import Optional

from rsvplib.processor.tokenizer import PARAGRAPH_MARKER

DEFAULT_FONT_SIZE = 50
MIN_FONT_SIZE = 24
# Ancho medio de un glifo monoespaciado respecto al tamaño de fuente
GLYPH_WIDTH_RATIO = 0.62
PARAGRAPH_GLYPH = "¶"

_ALNUM = r"[^\W_]"
_HAS_ALNUM_RE = re.compile(_ALNUM)
_WORD_SHAPE_RE = re.compile(
    rf"([\W_]*)({_ALNUM}+(?:[\-’']{_ALNUM}+)*)([\W_]*)"
)


@dataclass(frozen=True)
class OrpLayout:
    """
    Decisión de render para un token.

    Si highlighted es False el token se pinta tal cual (text); si es True
    se pinta left + focal + right con el focal destacado y centrado.
    """
    text:        str
    left:        str
    focal:       str
    right:       str
    font_size:   int
    highlighted: bool


def orp_index(core_length: int) -> int:
    """Posición del carácter focal según la longitud del núcleo de la palabra."""
    if core_length <= 2:
        return 0
    if core_length <= 5:
        return 1
    if core_length <= 9:
        return 2
    if core_length <= 13:
        return 3
    return 4


def split_word_token(token: str) -> Optional[tuple[str, str, str]]:
    """(leading, core, trailing), o None si el token no tiene forma de palabra."""
    match = _WORD_SHAPE_RE.fullmatch(token)
    if not match:
        return None
    return match.group(1), match.group(2), match.group(3)


def fit_font_size(
    base_size:    float,
    max_width:    Optional[float],
    left_length:  int,
    right_length: int,
) -> int:
    """
    Mayor tamaño <= base_size con el que ambos lados caben en max_width.

    Cada lado se mide como si estuviera reflejado alrededor del focal
    (2 * len + 1 glifos), así el focal queda siempre en el centro.
    Nunca baja de MIN_FONT_SIZE.
    """
    if not max_width or max_width <= 0:
        return int(base_size)

    left_limit = max_width / (GLYPH_WIDTH_RATIO * (2 * left_length + 1))
    right_limit = max_width / (GLYPH_WIDTH_RATIO * (2 * right_length + 1))
    fitted = math.floor(min(base_size, left_limit, right_limit))
    return max(MIN_FONT_SIZE, min(int(base_size), fitted))


def layout_token(
    token:     str,
    font_size: float           = DEFAULT_FONT_SIZE,
    enabled:   bool            = True,
    max_width: Optional[float] = None,
) -> OrpLayout:
    if not enabled or not _HAS_ALNUM_RE.search(token):
        return _verbatim(PARAGRAPH_GLYPH if token == PARAGRAPH_MARKER else token, font_size)

    parts = split_word_token(token)
    if parts is None:
        return _verbatim(token, font_size)

    leading, core, trailing = parts
    idx = min(orp_index(len(core)), len(core) - 1)
    left = f"{leading}{core[:idx]}"
    right = f"{core[idx + 1:]}{trailing}"

    return OrpLayout(
        text        = token,
        left        = left,
        focal       = core[idx],
        right       = right,
        font_size   = fit_font_size(font_size, max_width, len(left), len(right)),
        highlighted = True,
    )


def _verbatim(text: str, font_size: float) -> OrpLayout:
    return OrpLayout(
        text        = text,
        left        = "",
        focal       = "",
        right       = "",
        font_size   = int(font_size),
        highlighted = False,
    )
