# storage/keys.py
BOOK_LIST_KEY        = "rsvplib:books"
GLOBAL_SETTINGS_KEY  = "rsvplib:settings"
READING_STATE_PREFIX = "readingstate:"
TOKEN_CHUNK_PREFIX   = "tokenchunk:"

DEFAULT_CHUNK_SIZE = 5000
DEFAULT_WPM        = 300


def token_chunk_key(book_id: str, chunk_index: int) -> str:
    return f"{TOKEN_CHUNK_PREFIX}{book_id}_{chunk_index}"


def token_chunk_prefix(book_id: str) -> str:
    """Prefijo común a todos los chunks de un libro (incluye el '_' final)."""
    return f"{TOKEN_CHUNK_PREFIX}{book_id}_"


def reading_state_key(book_id: str) -> str:
    return f"{READING_STATE_PREFIX}{book_id}"
