# tests/storage/test_repository.py
import json
import math

import pytest
from unittest.mock import MagicMock

from rsvplib.processor.errors import StoreIoError
from rsvplib.storage.keys import (
    BOOK_LIST_KEY,
    GLOBAL_SETTINGS_KEY,
    reading_state_key,
    token_chunk_key,
)
from rsvplib.storage.kv import KeyValueStore
from rsvplib.storage.models import (
    BookMeta,
    Chapter,
    GlobalSettings,
    ReadingState,
    SourceType,
)
from rsvplib.storage.repository import Repository


@pytest.fixture
def repo():
    """Cada test tiene su propia DB en memoria, aislada, sin cleanup."""
    r = Repository(db_path=":memory:")
    yield r
    r.close()


def make_meta(book_id: str = "b1", updated_at: int = 1, **overrides) -> BookMeta:
    fields = dict(
        id          = book_id,
        title       = f"Libro {book_id}",
        source_type = SourceType.EPUB,
        created_at  = 1,
        updated_at  = updated_at,
        text_length = 42,
        token_count = 10,
        chunk_size  = 5,
        chunk_count = 2,
        preview     = "uno dos",
        chapters    = [Chapter("Uno", 0, 5), Chapter("Dos", 5, 10)],
    )
    fields.update(overrides)
    return BookMeta(**fields)


# ------------------------------------------------------------------
# Books
# ------------------------------------------------------------------

class TestBooks:

    def test_biblioteca_vacia(self, repo):
        assert repo.load_books() == []

    def test_upsert_y_get(self, repo):
        repo.upsert_book(make_meta("b1"))
        book = repo.get_book("b1")
        assert book == make_meta("b1")
        assert book.source_type == SourceType.EPUB

    def test_upsert_reemplaza_sin_duplicar(self, repo):
        repo.upsert_book(make_meta("b1"))
        repo.upsert_book(make_meta("b1", title="Nuevo"))
        books = repo.load_books()
        assert len(books) == 1
        assert books[0].title == "Nuevo"

    def test_orden_mas_reciente_primero(self, repo):
        repo.upsert_book(make_meta("viejo", updated_at=10))
        repo.upsert_book(make_meta("nuevo", updated_at=20))
        assert [b.id for b in repo.load_books()] == ["nuevo", "viejo"]

    def test_get_inexistente(self, repo):
        assert repo.get_book("nope") is None

    def test_indice_corrupto_es_biblioteca_vacia(self, repo):
        repo.store.set(BOOK_LIST_KEY, b"{roto")
        assert repo.load_books() == []

    def test_entrada_corrupta_se_descarta(self, repo):
        repo.store.set(BOOK_LIST_KEY, b'[{"title": "sin id"}, {"id": "ok"}]')
        assert [b.id for b in repo.load_books()] == ["ok"]

    def test_capitulos_con_limites_rotos_llegan_como_nan(self, repo):
        repo.store.set(
            BOOK_LIST_KEY,
            b'[{"id": "x", "chapters": [{"title": "A", "start_token": "foo", "end_token": 3.7}]}]',
        )
        chapter = repo.get_book("x").chapters[0]
        assert math.isnan(chapter.start_token)
        assert chapter.end_token == 3

    def test_upsert_conserva_entradas_no_decodificables(self, repo):
        repo.store.set(BOOK_LIST_KEY, b'[{"id": "viejo", "source_type": "txt"}]')
        repo.save_token_chunks("viejo", ["a", "b"], 1)

        repo.upsert_book(make_meta("nuevo"))

        raw_ids = [e["id"] for e in json.loads(repo.store.get(BOOK_LIST_KEY))]
        assert sorted(raw_ids) == ["nuevo", "viejo"]
        assert [b.id for b in repo.load_books()] == ["nuevo"]
        assert repo.purge_orphan_chunks() == 0

    def test_remove_conserva_entradas_no_decodificables(self, repo):
        repo.store.set(BOOK_LIST_KEY, b'[{"id": "viejo", "source_type": "txt"}]')
        repo.upsert_book(make_meta("b1"))

        repo.remove_book("b1")

        assert json.loads(repo.store.get(BOOK_LIST_KEY)) == [{"id": "viejo", "source_type": "txt"}]

    def test_remove_book_borra_todo(self, repo):
        repo.upsert_book(make_meta("b1"))
        repo.save_token_chunks("b1", ["a", "b", "c"], 2)
        repo.save_reading_state(ReadingState("b1", 1, 300, True, True, 0))

        repo.remove_book("b1")

        assert repo.get_book("b1") is None
        assert repo.load_reading_state("b1") is None
        assert repo.load_token_chunk("b1", 0) is None
        assert repo.store.list_keys() == [BOOK_LIST_KEY]


# ------------------------------------------------------------------
# Chunks
# ------------------------------------------------------------------

class TestChunks:

    @pytest.mark.parametrize("n,size,expected", [(10, 3, 4), (9, 3, 3), (1, 5000, 1), (0, 3, 0)])
    def test_chunk_count(self, repo, n, size, expected):
        tokens = [f"t{i}" for i in range(n)]
        assert repo.save_token_chunks("b1", tokens, size) == (size, expected)

    def test_concatenar_reproduce_la_secuencia(self, repo):
        tokens = [f"t{i}" for i in range(11)] + ["\n", "ñandú"]
        _, count = repo.save_token_chunks("b1", tokens, 4)

        rebuilt = []
        for i in range(count):
            rebuilt.extend(repo.load_token_chunk("b1", i))
        assert rebuilt == tokens

    def test_ultimo_chunk_con_el_resto(self, repo):
        repo.save_token_chunks("b1", list("abcdefg"), 3)
        assert repo.load_token_chunk("b1", 2) == ["g"]

    def test_chunk_size_invalido(self, repo):
        with pytest.raises(ValueError):
            repo.save_token_chunks("b1", ["a"], 0)

    def test_chunk_ausente(self, repo):
        assert repo.load_token_chunk("b1", 0) is None

    def test_chunk_corrupto(self, repo):
        repo.store.set(token_chunk_key("b1", 0), b'{"no": "lista"}')
        assert repo.load_token_chunk("b1", 0) is None

    def test_fallo_de_lectura_es_blando(self):
        store = MagicMock(spec=KeyValueStore)
        store.get.side_effect = StoreIoError("disco")
        assert Repository(store=store).load_token_chunk("b1", 0) is None

    def test_delete_no_toca_otros_libros(self, repo):
        repo.save_token_chunks("b1", ["a", "b"], 1)
        repo.save_token_chunks("b10", ["c"], 1)

        repo.delete_token_chunks("b1")

        assert repo.load_token_chunk("b1", 0) is None
        assert repo.load_token_chunk("b10", 0) == ["c"]

    def test_purge_orphan_chunks(self, repo):
        repo.upsert_book(make_meta("vivo"))
        repo.save_token_chunks("vivo", ["a"], 1)
        repo.save_token_chunks("huerfano_x", ["b", "c"], 1)

        assert repo.purge_orphan_chunks() == 2
        assert repo.load_token_chunk("vivo", 0) == ["a"]
        assert repo.load_token_chunk("huerfano_x", 0) is None


# ------------------------------------------------------------------
# Reading state y settings
# ------------------------------------------------------------------

class TestReadingState:

    def test_round_trip(self, repo):
        state = ReadingState("b1", 7, 350, False, True, 123)
        repo.save_reading_state(state)
        assert repo.load_reading_state("b1") == state

    def test_corrupto(self, repo):
        repo.store.set(reading_state_key("b1"), b'{"index": 3}')
        assert repo.load_reading_state("b1") is None

    def test_sanea_valores(self, repo):
        repo.store.set(reading_state_key("b1"), b'{"book_id": "b1", "index": -4, "wpm": 0}')
        state = repo.load_reading_state("b1")
        assert state.index == 0
        assert state.wpm == 1


class TestGlobalSettings:

    def test_defaults_si_no_hay_nada(self, repo):
        assert repo.load_global_settings() == GlobalSettings(default_wpm=300)

    def test_defaults_configurables(self):
        r = Repository(db_path=":memory:", default_settings=GlobalSettings(default_wpm=500))
        assert r.load_global_settings().default_wpm == 500
        r.close()

    def test_guardar_y_cargar(self, repo):
        settings = GlobalSettings(default_wpm=450, default_orp_enabled=False)
        repo.save_global_settings(settings)
        assert repo.load_global_settings() == settings

    def test_corruptas_vuelven_a_defaults(self, repo):
        repo.store.set(GLOBAL_SETTINGS_KEY, b'{"default_wpm": "rapido"}')
        assert repo.load_global_settings().default_wpm == 300


class TestWriteFailures:

    def test_errores_de_escritura_se_propagan(self):
        store = MagicMock(spec=KeyValueStore)
        store.set.side_effect = StoreIoError("disco lleno")
        with pytest.raises(StoreIoError):
            Repository(store=store).save_token_chunks("b1", ["a"], 1)
