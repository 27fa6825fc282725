# tests/processor/parsers/test_package.py
import pytest

from conftest import CONTAINER_XML, build_opf
from rsvplib.processor.errors import MalformedContainerError, MalformedPackageError
from rsvplib.processor.parsers.package import (
    parse_container,
    parse_package,
    reading_order,
    resolve_path,
)

XHTML = "application/xhtml+xml"


# ------------------------------------------------------------------
# container.xml
# ------------------------------------------------------------------

class TestParseContainer:

    def test_devuelve_full_path(self):
        xml = CONTAINER_XML.format(opf_path="OEBPS/content.opf").encode()
        assert parse_container(xml) == "OEBPS/content.opf"

    def test_ausente(self):
        with pytest.raises(MalformedContainerError):
            parse_container(None)

    def test_xml_roto(self):
        with pytest.raises(MalformedContainerError):
            parse_container(b"<container><rootfiles>")

    def test_sin_rootfile(self):
        with pytest.raises(MalformedContainerError):
            parse_container(b"<container><rootfiles/></container>")

    def test_rootfile_sin_ruta(self):
        with pytest.raises(MalformedContainerError):
            parse_container(b'<container><rootfiles><rootfile full-path=" "/></rootfiles></container>')


# ------------------------------------------------------------------
# OPF
# ------------------------------------------------------------------

class TestParsePackage:

    def test_titulo_manifest_y_spine(self):
        opf = build_opf(
            "Mi Libro",
            [("c1", "ch1.xhtml", XHTML, ""), ("nav", "nav.xhtml", XHTML, "nav")],
            ["c1"],
        )
        doc = parse_package(opf.encode(), "OEBPS/content.opf")

        assert doc.title == "Mi Libro"
        assert [i.id for i in doc.manifest] == ["c1", "nav"]
        assert doc.manifest[1].is_nav is True
        assert doc.spine == ["c1"]
        assert doc.base_dir == "OEBPS"

    def test_sin_titulo(self):
        doc = parse_package(build_opf(None, [], []).encode(), "content.opf")
        assert doc.title is None

    def test_xml_roto(self):
        with pytest.raises(MalformedPackageError):
            parse_package(b"<package><manifest>", "content.opf")

    def test_raiz_incorrecta(self):
        with pytest.raises(MalformedPackageError):
            parse_package(b"<html/>", "content.opf")

    def test_ausente(self):
        with pytest.raises(MalformedPackageError):
            parse_package(None, "content.opf")


# ------------------------------------------------------------------
# Orden de lectura
# ------------------------------------------------------------------

class TestReadingOrder:

    def _doc(self, manifest, spine, path="OEBPS/content.opf"):
        return parse_package(build_opf("T", manifest, spine).encode(), path)

    def test_sigue_el_spine_no_el_manifest(self):
        doc = self._doc(
            [("a", "a.xhtml", XHTML, ""), ("b", "b.xhtml", XHTML, "")],
            ["b", "a"],
        )
        assert [s.path for s in reading_order(doc)] == ["OEBPS/b.xhtml", "OEBPS/a.xhtml"]

    def test_excluye_nav_y_tipos_no_legibles(self):
        doc = self._doc(
            [
                ("nav", "nav.xhtml", XHTML, "nav"),
                ("img", "cover.jpg", "image/jpeg", ""),
                ("c1", "ch1.html", "text/html", ""),
            ],
            ["nav", "img", "c1"],
        )
        assert [s.path for s in reading_order(doc)] == ["OEBPS/ch1.html"]

    def test_fallback_al_manifest_si_el_spine_no_aporta(self):
        doc = self._doc(
            [
                ("nav", "nav.xhtml", XHTML, "nav"),
                ("c2", "ch2.xhtml", XHTML, ""),
                ("c1", "ch1.xhtml", XHTML, ""),
            ],
            ["missing"],
        )
        assert [s.path for s in reading_order(doc)] == ["OEBPS/ch2.xhtml", "OEBPS/ch1.xhtml"]

    def test_sin_nada_legible(self):
        doc = self._doc([("img", "cover.jpg", "image/jpeg", "")], ["img"])
        assert reading_order(doc) == []

    def test_duplicados_se_leen_una_vez(self):
        doc = self._doc([("a", "a.xhtml", XHTML, "")], ["a", "a"])
        assert len(reading_order(doc)) == 1


class TestResolvePath:

    def test_relativo_al_opf(self):
        assert resolve_path("OEBPS", "Text/ch1.xhtml") == "OEBPS/Text/ch1.xhtml"

    def test_colapsa_punto_y_punto_punto(self):
        assert resolve_path("OEBPS/content", "../Text/./ch1.xhtml") == "OEBPS/Text/ch1.xhtml"

    def test_quita_fragmento_y_decodifica(self):
        assert resolve_path("", "mi%20cap.xhtml#sec2") == "mi cap.xhtml"
