# rsvplib/factory.py
from typing import Optional

from rsvplib.config_loader import AppConfig, load_config
from rsvplib.importer import Importer
from rsvplib.processor.parsers.factory import ParserFactory
from rsvplib.storage.repository import Repository


def build_repository(config: Optional[AppConfig] = None) -> Repository:
    config = config or load_config()
    return Repository(
        db_path          = config.db_path,
        default_settings = config.default_settings(),
    )


def build_importer(
    config: Optional[AppConfig]  = None,
    repo:   Optional[Repository] = None,
) -> Importer:
    """
    Ensambla el Importer con todas sus dependencias.
    Punto de entrada único para el CLI y los tests de integración.
    """
    config = config or load_config()
    return Importer(
        repo           = repo or build_repository(config),
        parser_factory = ParserFactory(),
        chunk_size     = config.chunk_size,
    )
