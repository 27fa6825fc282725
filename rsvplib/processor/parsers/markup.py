# processor/parsers/markup.py
import posixpath
import re
from urllib.parse import unquote

from rsvplib.processor.tokenizer import normalize_text

_TITLE_MAX_CHARS = 120

# Tabla fija de entidades con nombre. Lo que no esté aquí se deja tal cual.
NAMED_ENTITIES: dict[str, str] = {
    "amp":    "&",
    "apos":   "'",
    "copy":   "©",
    "gt":     ">",
    "hellip": "...",
    "laquo":  "<<",
    "ldquo":  '"',
    "lsquo":  "'",
    "lt":     "<",
    "mdash":  "--",
    "nbsp":   " ",
    "ndash":  "-",
    "quot":   '"',
    "raquo":  ">>",
    "rdquo":  '"',
    "rsquo":  "'",
    "trade":  "TM",
}

_ENTITY_RE = re.compile(r"&(#[xX][0-9a-fA-F]+|#[0-9]+|[a-zA-Z][a-zA-Z0-9]+);")

# Orden importa: primero lo que se descarta entero, luego saltos, luego el resto de etiquetas
_STRIP_RULES: list[tuple[re.Pattern, str]] = [
    (re.compile(r"<\?[\s\S]*?\?>"), " "),
    (re.compile(r"<!DOCTYPE[\s\S]*?>", re.IGNORECASE), " "),
    (re.compile(r"<!--[\s\S]*?-->"), " "),
    (re.compile(r"<script\b[^>]*>[\s\S]*?</script\s*>", re.IGNORECASE), " "),
    (re.compile(r"<style\b[^>]*>[\s\S]*?</style\s*>", re.IGNORECASE), " "),
    (re.compile(r"<(?:br|hr)\b[^>]*/?>", re.IGNORECASE), "\n"),
    (re.compile(
        r"</(?:p|div|section|article|blockquote|li|ul|ol|h[1-6]|table|tr|td|pre)\s*>",
        re.IGNORECASE,
    ), "\n"),
    (re.compile(r"<[^>]+>"), " "),
]

_TITLE_PATTERNS: list[re.Pattern] = [
    re.compile(r"<h1\b[^>]*>([\s\S]*?)</h1\s*>", re.IGNORECASE),
    re.compile(r"<title\b[^>]*>([\s\S]*?)</title\s*>", re.IGNORECASE),
    re.compile(r"<h2\b[^>]*>([\s\S]*?)</h2\s*>", re.IGNORECASE),
]

_TAG_RE = re.compile(r"<[^>]+>")


def decode_entities(text: str) -> str:
    """Decodifica entidades numéricas (decimal/hex) y las de NAMED_ENTITIES."""
    return _ENTITY_RE.sub(_decode_entity, text)


def as_inline_text(text: str) -> str:
    """Todo el whitespace colapsado a un espacio, en una sola línea."""
    return " ".join(text.split())


def html_to_text(markup: str) -> str:
    """
    Convierte el XHTML de un capítulo a texto plano.

    Los cierres de bloque y los <br>/<hr> pasan a salto de línea; el resto de
    etiquetas desaparece. El resultado queda normalizado como cualquier texto
    que entra al tokenizer.
    """
    for pattern, replacement in _STRIP_RULES:
        markup = pattern.sub(replacement, markup)
    return normalize_text(decode_entities(markup))


def extract_markup_title(markup: str) -> str | None:
    """Primer <h1>, si no <title>, si no <h2>; en una línea y como mucho 120 caracteres."""
    for pattern in _TITLE_PATTERNS:
        match = pattern.search(markup)
        if not match or not match.group(1):
            continue
        title = as_inline_text(decode_entities(_TAG_RE.sub(" ", match.group(1))))
        if title:
            return truncate_title(title)
    return None


def truncate_title(title: str) -> str:
    if len(title) > _TITLE_MAX_CHARS:
        return f"{title[:_TITLE_MAX_CHARS - 3]}..."
    return title


def fallback_chapter_title(path: str, index: int) -> str:
    """
    Título legible derivado del nombre de archivo:
    'Text/capitulo_uno-final.xhtml' → 'capitulo uno final'.
    Sin nada aprovechable → 'Chapter N' (1-based).
    """
    stem, _ = posixpath.splitext(posixpath.basename(path))
    readable = as_inline_text(re.sub(r"[_-]+", " ", unquote(stem)))
    return readable or f"Chapter {index + 1}"


def _decode_entity(match: re.Match) -> str:
    entity = match.group(1)
    if entity[0] == "#":
        is_hex = entity[1:2] in ("x", "X")
        try:
            code = int(entity[2:] if is_hex else entity[1:], 16 if is_hex else 10)
        except ValueError:
            return ""
        if code <= 0 or code > 0x10FFFF or 0xD800 <= code <= 0xDFFF:
            return ""
        return chr(code)

    named = NAMED_ENTITIES.get(entity.lower())
    return named if named is not None else match.group(0)
