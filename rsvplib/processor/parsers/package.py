# processor/parsers/package.py
"""
Documentos estructurales de un EPUB: META-INF/container.xml y el paquete OPF.

Se validan en el borde: lo que sale de aquí son dataclasses con campos
explícitos, nunca el árbol XML crudo.
"""
import posixpath
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import unquote

from rsvplib.processor.errors import MalformedContainerError, MalformedPackageError

CONTAINER_PATH = "META-INF/container.xml"

READABLE_MEDIA_TYPES = frozenset({
    "application/xhtml+xml",
    "application/xml",
    "text/html",
    "text/xml",
})


@dataclass
class ManifestItem:
    id:         str
    href:       str
    media_type: Optional[str] = None
    title_hint: Optional[str] = None
    is_nav:     bool          = False

    @property
    def is_readable(self) -> bool:
        return bool(self.media_type) and self.media_type.lower() in READABLE_MEDIA_TYPES


@dataclass
class PackageDocument:
    path:      str
    title:     Optional[str]           = None
    manifest:  list[ManifestItem]      = field(default_factory=list)   # orden del manifest
    spine:     list[str]               = field(default_factory=list)   # idrefs en orden de lectura

    @property
    def base_dir(self) -> str:
        return posixpath.dirname(self.path)

    def manifest_by_id(self) -> dict[str, ManifestItem]:
        table: dict[str, ManifestItem] = {}
        for item in self.manifest:
            table.setdefault(item.id, item)
        return table


@dataclass
class SpineSection:
    path:       str
    title_hint: Optional[str] = None


# ------------------------------------------------------------------ #
#  Parsing                                                             #
# ------------------------------------------------------------------ #

def parse_container(xml: bytes | None) -> str:
    """
    Devuelve el full-path del primer rootfile declarado.

    Raises:
        MalformedContainerError: descriptor ausente, ilegible o sin rootfile.
    """
    if not xml:
        raise MalformedContainerError(f"EPUB inválido: falta {CONTAINER_PATH}.")
    try:
        root = ET.fromstring(xml)
    except ET.ParseError as e:
        raise MalformedContainerError(f"EPUB inválido: {CONTAINER_PATH} no es XML válido.") from e

    for node in root.iter():
        if _local(node.tag) != "rootfile":
            continue
        full_path = (node.get("full-path") or "").strip()
        if full_path:
            return full_path

    raise MalformedContainerError("EPUB inválido: no se encontró la ruta del documento de paquete.")


def parse_package(xml: bytes | None, path: str) -> PackageDocument:
    """
    Parsea el OPF a un PackageDocument.

    Raises:
        MalformedPackageError: documento ausente, XML roto o raíz distinta de <package>.
    """
    if not xml:
        raise MalformedPackageError("EPUB inválido: no se pudo leer el documento de paquete.")
    try:
        root = ET.fromstring(xml)
    except ET.ParseError as e:
        raise MalformedPackageError("EPUB inválido: documento de paquete mal formado.") from e

    if _local(root.tag) != "package":
        raise MalformedPackageError("EPUB inválido: documento de paquete mal formado.")

    document = PackageDocument(path=path)

    for section in root:
        name = _local(section.tag)
        if name == "metadata" and document.title is None:
            document.title = _first_title(section)
        elif name == "manifest":
            document.manifest.extend(_parse_manifest(section))
        elif name == "spine":
            document.spine.extend(
                idref for idref in (_attr(ref, "idref") for ref in section
                                    if _local(ref.tag) == "itemref")
                if idref
            )

    return document


def reading_order(document: PackageDocument) -> list[SpineSection]:
    """
    Secciones legibles en orden del spine. Si el spine no aporta ninguna,
    fallback a todas las entradas legibles del manifest en su orden.
    El documento de navegación queda siempre fuera.
    """
    manifest = document.manifest_by_id()
    candidates = [manifest[idref] for idref in document.spine if idref in manifest]

    sections = _to_sections(candidates, document.base_dir)
    if sections:
        return sections
    return _to_sections(document.manifest, document.base_dir)


def resolve_path(base_dir: str, href: str) -> str:
    """
    Une href (relativa al OPF) con su directorio. Quita fragmento y query,
    decodifica percent-encoding y colapsa los segmentos '.' y '..'.
    """
    raw = href.split("#", 1)[0].split("?", 1)[0]
    raw = unquote(raw)
    joined = f"{base_dir}/{raw}" if base_dir else raw

    parts: list[str] = []
    for part in joined.replace("\\", "/").split("/"):
        if not part or part == ".":
            continue
        if part == "..":
            if parts:
                parts.pop()
            continue
        parts.append(part)
    return "/".join(parts)


# ------------------------------------------------------------------ #
#  Helpers privados                                                    #
# ------------------------------------------------------------------ #

def _to_sections(items: list[ManifestItem], base_dir: str) -> list[SpineSection]:
    sections: list[SpineSection] = []
    seen: set[str] = set()
    for item in items:
        if item.is_nav or not item.is_readable:
            continue
        resolved = resolve_path(base_dir, item.href)
        if not resolved or resolved in seen:
            continue
        seen.add(resolved)
        sections.append(SpineSection(path=resolved, title_hint=item.title_hint))
    return sections


def _parse_manifest(manifest: ET.Element) -> list[ManifestItem]:
    items: list[ManifestItem] = []
    for node in manifest:
        if _local(node.tag) != "item":
            continue
        item_id = _attr(node, "id")
        href = _attr(node, "href")
        if not item_id or not href:
            continue
        properties = _attr(node, "properties") or ""
        items.append(ManifestItem(
            id         = item_id,
            href       = href,
            media_type = _attr(node, "media-type"),
            title_hint = _attr(node, "title"),
            is_nav     = "nav" in properties.split(),
        ))
    return items


def _first_title(metadata: ET.Element) -> Optional[str]:
    for node in metadata.iter():
        if _local(node.tag) == "title":
            text = " ".join("".join(node.itertext()).split())
            if text:
                return text
    return None


def _attr(node: ET.Element, name: str) -> Optional[str]:
    """Atributo sin importar el namespace, recortado; vacío → None."""
    value = node.get(name)
    if value is None:
        for key, candidate in node.attrib.items():
            if _local(key) == name:
                value = candidate
                break
    if value is None:
        return None
    return value.strip() or None


def _local(tag) -> str:
    """'{http://www.idpf.org/2007/opf}item' → 'item'"""
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]
