# tests/conftest.py
import io
import zipfile
from typing import Optional

import pytest

from rsvplib.storage.kv import MemoryKeyValueStore
from rsvplib.storage.repository import Repository


CONTAINER_XML = """<?xml version="1.0" encoding="UTF-8"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="{opf_path}" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>
"""


def chapter_xhtml(heading: Optional[str], body: str) -> str:
    h1 = f"<h1>{heading}</h1>" if heading else ""
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<html xmlns="http://www.w3.org/1999/xhtml"><head><title></title></head>'
        f"<body>{h1}<p>{body}</p></body></html>"
    )


def build_opf(
    title:    Optional[str],
    manifest: list[tuple[str, str, str, str]],
    spine:    list[str],
) -> str:
    """manifest: (id, href, media_type, properties)"""
    items = "\n".join(
        f'<item id="{i}" href="{h}" media-type="{m}"'
        + (f' properties="{p}"' if p else "")
        + "/>"
        for i, h, m, p in manifest
    )
    refs = "\n".join(f'<itemref idref="{r}"/>' for r in spine)
    title_xml = f"<dc:title>{title}</dc:title>" if title else ""
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<package xmlns="http://www.idpf.org/2007/opf" version="3.0" unique-identifier="uid">
  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/">{title_xml}</metadata>
  <manifest>
{items}
  </manifest>
  <spine>
{refs}
  </spine>
</package>
"""


def zip_entries(entries: dict[str, str | bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        zf.writestr("mimetype", "application/epub+zip")
        for name, content in entries.items():
            zf.writestr(name, content)
    return buffer.getvalue()


def two_chapter_epub() -> bytes:
    """EPUB de referencia: 'Test Book', dos capítulos + nav."""
    opf = build_opf(
        "Test Book",
        [
            ("nav", "nav.xhtml", "application/xhtml+xml", "nav"),
            ("c1", "Text/ch1.xhtml", "application/xhtml+xml", ""),
            ("c2", "Text/ch2.xhtml", "application/xhtml+xml", ""),
        ],
        ["nav", "c1", "c2"],
    )
    return zip_entries({
        "META-INF/container.xml": CONTAINER_XML.format(opf_path="OEBPS/content.opf"),
        "OEBPS/content.opf":      opf,
        "OEBPS/nav.xhtml":        chapter_xhtml("Contents", "Chapter One Chapter Two"),
        "OEBPS/Text/ch1.xhtml":   chapter_xhtml("Chapter One", "Alpha beta."),
        "OEBPS/Text/ch2.xhtml":   chapter_xhtml("Chapter Two", "Gamma delta."),
    })


# ------------------------------------------------------------------
# Fixtures
# ------------------------------------------------------------------

@pytest.fixture
def memory_repo():
    """Repository sobre un store en memoria, aislado, sin cleanup."""
    repo = Repository(store=MemoryKeyValueStore())
    yield repo
    repo.close()


@pytest.fixture
def epub_bytes() -> bytes:
    return two_chapter_epub()


@pytest.fixture
def epub_file(tmp_path, epub_bytes):
    f = tmp_path / "test_book.epub"
    f.write_bytes(epub_bytes)
    return f
