# tests/processor/parsers/test_epub_parser.py
import pytest

from conftest import CONTAINER_XML, build_opf, chapter_xhtml, zip_entries
from rsvplib.processor.errors import (
    MalformedContainerError,
    MalformedPackageError,
    NoReadableSectionsError,
)
from rsvplib.processor.parsers.epub_parser import EpubExtractor, EpubParser, ExtractionState

XHTML = "application/xhtml+xml"


def make_epub(chapters: dict[str, str], manifest, spine, title="Libro", opf_path="OEBPS/content.opf"):
    entries = {
        "META-INF/container.xml": CONTAINER_XML.format(opf_path=opf_path),
        opf_path: build_opf(title, manifest, spine),
    }
    entries.update(chapters)
    return zip_entries(entries)


# ------------------------------------------------------------------
# Camino feliz
# ------------------------------------------------------------------

class TestEpubExtractor:

    def test_dos_capitulos_y_nav(self, epub_bytes):
        extractor = EpubExtractor(epub_bytes)
        book = extractor.extract()

        assert extractor.state == ExtractionState.SECTIONS_EXTRACTED
        assert book.title == "Test Book"
        assert [s.title for s in book.sections] == ["Chapter One", "Chapter Two"]
        assert book.sections[0].text == "Chapter One\n Alpha beta."

    def test_progreso_monotono_hasta_uno(self, epub_bytes):
        seen = []
        EpubExtractor(epub_bytes).extract(on_progress=seen.append)
        assert seen == sorted(seen)
        assert seen[0] == pytest.approx(0.2)
        assert seen[-1] == pytest.approx(1.0)

    def test_seccion_vacia_se_descarta(self):
        data = make_epub(
            {
                "OEBPS/a.xhtml": chapter_xhtml(None, "   "),
                "OEBPS/b.xhtml": chapter_xhtml("B", "Texto."),
            },
            [("a", "a.xhtml", XHTML, ""), ("b", "b.xhtml", XHTML, "")],
            ["a", "b"],
        )
        book = EpubExtractor(data).extract()
        assert [s.title for s in book.sections] == ["B"]

    def test_seccion_ausente_se_salta(self):
        data = make_epub(
            {"OEBPS/b.xhtml": chapter_xhtml("B", "Texto.")},
            [("a", "a.xhtml", XHTML, ""), ("b", "b.xhtml", XHTML, "")],
            ["a", "b"],
        )
        assert len(EpubExtractor(data).extract().sections) == 1

    def test_ruta_sin_distinguir_mayusculas(self):
        data = make_epub(
            {"OEBPS/text/ch1.xhtml": chapter_xhtml("Uno", "Hola.")},
            [("c1", "Text/Ch1.xhtml", XHTML, "")],
            ["c1"],
        )
        assert EpubExtractor(data).extract().sections[0].title == "Uno"

    def test_titulo_desde_hint_y_desde_archivo(self):
        data = make_epub(
            {
                "OEBPS/a.xhtml": "<html><body><p>Uno.</p></body></html>",
                "OEBPS/el_final.xhtml": "<html><body><p>Dos.</p></body></html>",
            },
            [("a", "a.xhtml", XHTML, ""), ("b", "el_final.xhtml", XHTML, "")],
            ["a", "b"],
        )
        book = EpubExtractor(data).extract()
        assert [s.title for s in book.sections] == ["a", "el final"]


# ------------------------------------------------------------------
# Errores estructurales
# ------------------------------------------------------------------

class TestEpubExtractorErrors:

    def test_no_es_zip(self):
        extractor = EpubExtractor(b"not a zip")
        with pytest.raises(MalformedContainerError):
            extractor.extract()
        assert extractor.state == ExtractionState.FAILED

    def test_sin_container(self):
        data = zip_entries({"OEBPS/content.opf": build_opf("T", [], [])})
        with pytest.raises(MalformedContainerError):
            EpubExtractor(data).extract()

    def test_opf_ausente(self):
        data = zip_entries({
            "META-INF/container.xml": CONTAINER_XML.format(opf_path="OEBPS/content.opf"),
        })
        with pytest.raises(MalformedPackageError):
            EpubExtractor(data).extract()

    def test_opf_roto(self):
        data = zip_entries({
            "META-INF/container.xml": CONTAINER_XML.format(opf_path="content.opf"),
            "content.opf": "<package><manifest>",
        })
        extractor = EpubExtractor(data)
        with pytest.raises(MalformedPackageError):
            extractor.extract()
        assert extractor.state == ExtractionState.FAILED

    def test_sin_secciones_legibles(self):
        data = make_epub(
            {"OEBPS/nav.xhtml": chapter_xhtml("Contents", "x")},
            [("nav", "nav.xhtml", XHTML, "nav"), ("img", "c.jpg", "image/jpeg", "")],
            ["nav", "img"],
        )
        with pytest.raises(NoReadableSectionsError):
            EpubExtractor(data).extract()


# ------------------------------------------------------------------
# EpubParser
# ------------------------------------------------------------------

class TestEpubParser:

    def test_can_handle(self):
        parser = EpubParser()
        assert parser.can_handle("libro.EPUB")
        assert not parser.can_handle("libro.txt")

    def test_parse_desde_archivo(self, epub_file):
        book = EpubParser().parse(str(epub_file))
        assert book.source_path == str(epub_file)
        assert len(book.sections) == 2
