# rsvplib/cli.py
import asyncio
import shutil
import sys
from typing import Optional

import click
from dotenv import load_dotenv

from rsvplib.config_loader import AppConfig, load_config
from rsvplib.factory import build_importer, build_repository
from rsvplib.processor.errors import ImportFailedError, StoreIoError, error_message
from rsvplib.processor.models import ImportProgress
from rsvplib.processor.tokenizer import estimated_seconds
from rsvplib.reader.orp import OrpLayout, layout_token
from rsvplib.reader.session import PLACEHOLDER_TOKEN, ReadingSession
from rsvplib.storage.models import GlobalSettings
from rsvplib.utils.format import format_date, format_duration, format_percent


# Carga .env una sola vez, antes que cualquier otra cosa
load_dotenv()


# ------------------------------------------------------------------
# Grupo raíz
# ------------------------------------------------------------------

@click.group()
@click.version_option(package_name="rsvplib")
@click.option(
    "--config", "config_path",
    default = None,
    type    = click.Path(exists=False),
    help    = "Ruta a config.yaml (por defecto ~/.rsvplib/config.yaml)",
)
@click.pass_context
def main(ctx: click.Context, config_path: Optional[str]):
    """
    rsvplib: lector RSVP para libros .txt y .epub.

    Importa un libro y léelo palabra a palabra, a la velocidad que elijas,
    con el punto de reconocimiento óptimo resaltado.
    """
    try:
        ctx.obj = load_config(config_path)
    except (FileNotFoundError, ValueError) as e:
        _abort(str(e))


# ------------------------------------------------------------------
# rsvplib import
# ------------------------------------------------------------------

@main.command(name="import")
@click.argument("file", type=click.Path(exists=False))
@click.option("--title", default=None, help="Título a usar si el archivo no declara uno")
@click.pass_obj
def import_(config: AppConfig, file: str, title: Optional[str]):
    """Importa un libro .txt, .md o .epub a la biblioteca."""
    repo = build_repository(config)
    importer = build_importer(config, repo=repo)
    last_phase: list[str] = []

    def on_progress(state: ImportProgress) -> None:
        if state.progress >= 1.0 or not last_phase or last_phase[-1] != state.phase.value:
            last_phase.append(state.phase.value)
            click.echo(f"[rsvplib] {state.phase.value:<10} {state.progress * 100:5.1f}%")

    try:
        imported = asyncio.run(importer.import_file(file, title=title, on_progress=on_progress))

    except FileNotFoundError:
        _abort(f"Archivo no encontrado: {file}")

    except ImportFailedError as e:
        _abort(error_message(e, "No se pudo importar el libro."))

    except StoreIoError as e:
        _error(f"Error guardando el libro: {e}")
        sys.exit(1)

    except KeyboardInterrupt:
        click.echo("\n[rsvplib] Importación interrumpida. No se guardó nada.")
        sys.exit(0)

    finally:
        repo.close()

    meta = imported.meta
    click.echo("")
    click.echo("─" * 50)
    click.echo(f"[rsvplib] ✓ Importado: {meta.title}")
    click.echo(f"[rsvplib]   Id         : {meta.id}")
    click.echo(f"[rsvplib]   Tokens     : {meta.token_count}")
    click.echo(f"[rsvplib]   Capítulos  : {len(meta.chapters)}")
    click.echo(f"[rsvplib]   Duración   : "
               f"{format_duration(estimated_seconds(meta.token_count, imported.initial_state.wpm))}"
               f" a {imported.initial_state.wpm} wpm")
    click.echo("─" * 50)


# ------------------------------------------------------------------
# rsvplib list / chapters / delete / purge
# ------------------------------------------------------------------

@main.command(name="list")
@click.pass_obj
def list_(config: AppConfig):
    """Lista los libros de la biblioteca, más reciente primero."""
    repo = build_repository(config)
    try:
        books = repo.load_books()
        if not books:
            click.echo("[rsvplib] La biblioteca está vacía.")
            return

        for book in books:
            state = repo.load_reading_state(book.id)
            index = state.index if state else 0
            progress = format_percent(min(index + 1, book.token_count), book.token_count)
            click.echo(
                f"{book.id}  {click.style(book.title, bold=True)}"
                f"  [{book.source_type.value}] {progress}"
                f"  · {book.token_count} tokens · abierto {format_date(book.last_opened_at)}"
            )
            if book.preview:
                click.echo(f"    {book.preview}")
    finally:
        repo.close()


@main.command()
@click.argument("book_id")
@click.pass_obj
def chapters(config: AppConfig, book_id: str):
    """Muestra los capítulos de un libro."""
    repo = build_repository(config)
    try:
        try:
            session = ReadingSession.open(repo, book_id)
        except LookupError as e:
            _abort(str(e))

        current = session.current_chapter_index()
        for i, chapter in enumerate(session.chapters):
            marker = "▶" if i == current else " "
            click.echo(f"{marker} {i + 1:>3}. {chapter.title}  ({chapter.start_token}–{chapter.end_token})")
    finally:
        repo.close()


@main.command()
@click.argument("book_id")
@click.option("--yes", "-y", is_flag=True, help="No pedir confirmación")
@click.pass_obj
def delete(config: AppConfig, book_id: str, yes: bool):
    """Borra un libro, su progreso y todos sus chunks."""
    repo = build_repository(config)
    try:
        book = repo.get_book(book_id)
        if book is None:
            _abort(f"Libro no encontrado: {book_id}")

        if not yes and not click.confirm(f"¿Borrar '{book.title}'?", default=False):
            click.echo("[rsvplib] Sin cambios.")
            return

        repo.remove_book(book_id)
        click.echo(f"[rsvplib] ✓ '{book.title}' eliminado.")
    finally:
        repo.close()


@main.command()
@click.pass_obj
def purge(config: AppConfig):
    """Elimina chunks huérfanos de importaciones interrumpidas."""
    repo = build_repository(config)
    try:
        removed = repo.purge_orphan_chunks()
    finally:
        repo.close()
    click.echo(f"[rsvplib] {removed} chunks huérfanos eliminados.")


# ------------------------------------------------------------------
# rsvplib settings
# ------------------------------------------------------------------

@main.command()
@click.option("--wpm", type=click.IntRange(min=1), default=None, help="Velocidad por defecto")
@click.option("--orp/--no-orp", default=None, help="Resaltar el punto focal por defecto")
@click.option("--pauses/--no-pauses", default=None, help="Pausas de puntuación por defecto")
@click.pass_obj
def settings(config: AppConfig, wpm: Optional[int], orp: Optional[bool], pauses: Optional[bool]):
    """Muestra o actualiza los ajustes globales por defecto."""
    repo = build_repository(config)
    try:
        current = repo.load_global_settings()

        if wpm is not None or orp is not None or pauses is not None:
            current = GlobalSettings(
                default_wpm                = wpm if wpm is not None else current.default_wpm,
                default_orp_enabled        = orp if orp is not None else current.default_orp_enabled,
                default_punctuation_pauses = pauses if pauses is not None else current.default_punctuation_pauses,
            )
            repo.save_global_settings(current)
            click.echo("[rsvplib] ✓ Ajustes guardados.")
    finally:
        repo.close()

    click.echo(f"[rsvplib]   wpm    : {current.default_wpm}")
    click.echo(f"[rsvplib]   orp    : {'sí' if current.default_orp_enabled else 'no'}")
    click.echo(f"[rsvplib]   pausas : {'sí' if current.default_punctuation_pauses else 'no'}")


# ------------------------------------------------------------------
# rsvplib read
# ------------------------------------------------------------------

@main.command()
@click.argument("book_id")
@click.option("--wpm", type=click.IntRange(min=1), default=None, help="Velocidad de lectura")
@click.option("--orp/--no-orp", default=None, help="Resaltar el punto focal")
@click.option("--pauses/--no-pauses", default=None, help="Pausas extra en la puntuación")
@click.option("--chapter", type=click.IntRange(min=1), default=None, help="Empezar en el capítulo N")
@click.option("--restart", is_flag=True, help="Empezar desde el principio")
@click.pass_obj
def read(
    config:  AppConfig,
    book_id: str,
    wpm:     Optional[int],
    orp:     Optional[bool],
    pauses:  Optional[bool],
    chapter: Optional[int],
    restart: bool,
):
    """Lee un libro en la terminal. Ctrl+C pausa y guarda el progreso."""
    repo = build_repository(config)
    try:
        _read(repo, config, book_id, wpm, orp, pauses, chapter, restart)
    finally:
        repo.close()


def _read(repo, config, book_id, wpm, orp, pauses, chapter, restart) -> None:
    try:
        session = ReadingSession.open(repo, book_id)
    except LookupError as e:
        _abort(str(e))

    if session.book.token_count == 0:
        _abort("Este libro no tiene tokens.")

    if wpm is not None:
        session.set_wpm(wpm)
    if orp is not None:
        session.set_orp_enabled(orp)
    if pauses is not None:
        session.set_punctuation_pauses(pauses)
    if restart:
        session.seek(0)
    elif chapter is not None:
        if chapter > len(session.chapters):
            _abort(f"El libro solo tiene {len(session.chapters)} capítulos.")
        session.seek_chapter(chapter - 1)

    click.echo(f"[rsvplib] {session.book.title}: {session.progress_percent()} a {session.wpm} wpm")

    try:
        asyncio.run(_play(session, config))

    except KeyboardInterrupt:
        try:
            session.on_inactive()
        except StoreIoError as e:
            _error(f"Error guardando el progreso: {e}")
            sys.exit(1)
        click.echo("\n[rsvplib] Pausado. Progreso guardado.")
        return

    except StoreIoError as e:
        _error(f"Error guardando el progreso: {e}")
        sys.exit(1)

    click.echo(f"\n[rsvplib] ✓ Fin. {session.progress_percent()}")


async def _play(session: ReadingSession, config: AppConfig) -> None:
    """
    Host de terminal: pinta cada token y espera a que la sesión termine.
    Un fallo del almacén durante la reproducción se relanza aquí.
    """
    finished = asyncio.Event()
    width = shutil.get_terminal_size((80, 20)).columns

    def on_token(index: int, token: Optional[str]) -> None:
        layout = layout_token(
            token if token is not None else PLACEHOLDER_TOKEN,
            font_size = config.font_size,
            enabled   = session.orp_enabled,
            max_width = config.max_width,
        )
        click.echo("\r" + render_layout(layout, width), nl=False)

    session.on_token = on_token
    session.on_finished = finished.set

    on_token(session.index, session.resolve_token(session.index))
    session.play()
    try:
        await finished.wait()
    finally:
        if session.last_error is None:
            session.close()
        else:
            session.scheduler.close()

    if session.last_error is not None:
        raise session.last_error


def render_layout(layout: OrpLayout, width: int) -> str:
    """Una línea de terminal con el carácter focal en la columna central."""
    center = max(1, width // 2)
    if not layout.highlighted:
        return layout.text.center(width - 1)[: width - 1]

    left = layout.left[-(center - 1):] if center > 1 else ""
    right_room = max(0, width - 1 - center)
    line = (
        left.rjust(center - 1)
        + click.style(layout.focal, fg="red", bold=True)
        + layout.right[:right_room].ljust(right_room)
    )
    return line


# ------------------------------------------------------------------
# Helpers de output
# ------------------------------------------------------------------

def _abort(message: str) -> None:
    """Error de validación: culpa del usuario."""
    click.echo(click.style(f"[rsvplib] Error: {message}", fg="red"), err=True)
    sys.exit(1)


def _error(message: str) -> None:
    """Error de sistema, no es culpa del usuario."""
    click.echo(click.style(f"[rsvplib] {message}", fg="red"), err=True)
