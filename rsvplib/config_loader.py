# rsvplib/config_loader.py
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

from rsvplib.reader.orp import DEFAULT_FONT_SIZE
from rsvplib.storage.keys import DEFAULT_CHUNK_SIZE, DEFAULT_WPM
from rsvplib.storage.models import GlobalSettings

logger = logging.getLogger(__name__)

_DEFAULT_CONFIG_PATH = Path.home() / ".rsvplib" / "config.yaml"


@dataclass
class AppConfig:
    """Configuración de la instalación. Centralizada y explícita."""
    db_path:                    Optional[str]   = None
    chunk_size:                 int             = DEFAULT_CHUNK_SIZE
    default_wpm:                int             = DEFAULT_WPM
    default_orp_enabled:        bool            = True
    default_punctuation_pauses: bool            = True
    font_size:                  int             = DEFAULT_FONT_SIZE
    max_width:                  Optional[float] = None

    def default_settings(self) -> GlobalSettings:
        return GlobalSettings(
            default_wpm                = self.default_wpm,
            default_orp_enabled        = self.default_orp_enabled,
            default_punctuation_pauses = self.default_punctuation_pauses,
        )


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """
    Carga la configuración desde YAML.
    Sin archivo → defaults. Un path explícito que no existe sí es un error.
    RSVPLIB_DB_PATH, si está definida, tiene prioridad sobre db_path.

    Raises:
        FileNotFoundError: config_path explícito inexistente.
        ValueError: valores fuera de rango.
    """
    explicit = config_path or os.environ.get("RSVPLIB_CONFIG_PATH")
    path = Path(explicit or _DEFAULT_CONFIG_PATH)

    raw: dict = {}
    if path.exists():
        with path.open(encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    elif explicit:
        raise FileNotFoundError(f"Config no encontrada en {path}.")
    else:
        logger.debug("Sin config en %s, usando defaults", path)

    reader = raw.get("reader", {}) or {}
    config = AppConfig(
        db_path                    = os.environ.get("RSVPLIB_DB_PATH") or raw.get("db_path"),
        chunk_size                 = int(raw.get("chunk_size", DEFAULT_CHUNK_SIZE)),
        default_wpm                = int(reader.get("wpm", DEFAULT_WPM)),
        default_orp_enabled        = bool(reader.get("orp", True)),
        default_punctuation_pauses = bool(reader.get("punctuation_pauses", True)),
        font_size                  = int(reader.get("font_size", DEFAULT_FONT_SIZE)),
        max_width                  = reader.get("max_width"),
    )

    if config.chunk_size < 1:
        raise ValueError(f"chunk_size debe ser >= 1 en {path}")
    if config.default_wpm < 1:
        raise ValueError(f"reader.wpm debe ser >= 1 en {path}")
    return config
