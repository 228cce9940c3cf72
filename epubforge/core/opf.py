from __future__ import annotations

"""Package document (``content.opf``) model and encoder.

The same :class:`Package` renders to OPF 2.0 or OPF 3.0. Populated fields
are written exactly once; unpopulated optional fields produce no element at
all. The dialects differ in:

- namespace declarations on the root (``dc`` and ``opf`` for 2.0, ``dc`` only
  for 3.0) and the ``version`` literal;
- multi-valued subject/rights (one comma-joined element vs one element each);
- free-form metadata (``<meta name content/>`` vs ``<meta property>text</meta>``);
- how the cover image and the navigation document are flagged;
- bindings, which only exist in 3.0.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from lxml import etree as ET

from epubforge.core.models import (
    BindingItem,
    EpubVersion,
    GuideReference,
    ManifestItem,
    MetaItem,
    PackageMetadata,
    SpineItemRef,
)
from epubforge.core.utils import format_date, format_timestamp, serialize_xml, set_attr, set_text

__all__ = ["Package", "OPF_NS", "DC_NS", "NCX_MEDIA_TYPE"]

logger = logging.getLogger(__name__)

OPF_NS = "http://www.idpf.org/2007/opf"
DC_NS = "http://purl.org/dc/elements/1.1/"
NCX_MEDIA_TYPE = "application/x-dtbncx+xml"

_OP = "encode_package"


def _o(tag: str) -> str:
    return f"{{{OPF_NS}}}{tag}"


def _dc(tag: str) -> str:
    return f"{{{DC_NS}}}{tag}"


@dataclass
class Package:
    """In-memory package document."""

    metadata: PackageMetadata = field(default_factory=PackageMetadata)
    manifest: List[ManifestItem] = field(default_factory=list)
    spine: List[SpineItemRef] = field(default_factory=list)
    guide: List[GuideReference] = field(default_factory=list)
    bindings: List[BindingItem] = field(default_factory=list)

    def add_metadata(self, item: MetaItem) -> "Package":
        self.metadata.meta.append(item)
        return self

    def add_manifest(self, item: ManifestItem) -> "Package":
        self.manifest.append(item)
        return self

    def add_spine(self, item: SpineItemRef) -> "Package":
        self.spine.append(item)
        return self

    def add_guide(self, item: GuideReference) -> "Package":
        self.guide.append(item)
        return self

    def add_binding(self, item: BindingItem) -> "Package":
        self.bindings.append(item)
        return self

    def find_manifest(self, *, media_type: Optional[str] = None,
                      prop: Optional[str] = None) -> Optional[ManifestItem]:
        """First manifest item matching *media_type* and/or carrying property *prop*."""
        for item in self.manifest:
            if media_type is not None and item.media_type != media_type:
                continue
            if prop is not None and prop not in item.properties.split():
                continue
            return item
        return None

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------
    def encode(self, version: EpubVersion) -> str:
        """Serialize the package document for *version*."""
        v3 = version is EpubVersion.V30
        # Default namespace first so elements stay unprefixed; 2.0 attributes need the opf prefix.
        nsmap = {None: OPF_NS, "dc": DC_NS} if v3 else {None: OPF_NS, "dc": DC_NS, "opf": OPF_NS}
        root = ET.Element(_o("package"), nsmap=nsmap)
        root.set("version", version.value)
        identifier = self.metadata.identifier
        if identifier is not None and identifier.value:
            set_attr(root, "unique-identifier", identifier.id, operation=_OP)

        if v3:
            self._encode_metadata_v3(root)
        else:
            self._encode_metadata_v2(root)
        self._encode_manifest(root, v3)
        self._encode_spine(root, v3)

        if self.guide:
            guide = ET.SubElement(root, _o("guide"))
            for ref in self.guide:
                ref_el = ET.SubElement(guide, _o("reference"))
                set_attr(ref_el, "type", ref.type, operation=_OP)
                set_attr(ref_el, "title", ref.title, operation=_OP)
                set_attr(ref_el, "href", ref.href, operation=_OP)

        if v3 and self.bindings:
            bindings = ET.SubElement(root, _o("bindings"))
            for binding in self.bindings:
                media_el = ET.SubElement(bindings, _o("mediaType"))
                set_attr(media_el, "media-type", binding.media_type, operation=_OP)
                set_attr(media_el, "handler", binding.handler, operation=_OP)

        logger.debug("Encoded OPF %s: %d manifest items, %d spine items",
                     version.value, len(self.manifest), len(self.spine))
        return serialize_xml(root, operation=_OP)

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------
    def _dc_element(self, parent: ET._Element, tag: str, text: Optional[str]) -> Optional[ET._Element]:
        if text is None or not str(text).strip():
            return None
        element = ET.SubElement(parent, _dc(tag))
        set_text(element, str(text), operation=_OP)
        return element

    def _encode_common_dc(self, metadata: ET._Element) -> None:
        md = self.metadata
        title = ET.SubElement(metadata, _dc("title"))
        set_text(title, md.title, operation=_OP)
        self._dc_element(metadata, "language", md.language)

        identifier = md.identifier
        if identifier is not None and identifier.value:
            id_el = self._dc_element(metadata, "identifier", identifier.value)
            if id_el is not None:
                set_attr(id_el, "id", identifier.id, operation=_OP)

        for tag, value in (
            ("description", md.description),
            ("type", md.category),
            ("publisher", md.publisher),
            ("format", md.format),
            ("source", md.source),
            ("relation", md.relation),
            ("coverage", md.coverage),
        ):
            self._dc_element(metadata, tag, value)
        for contributor in md.contributors:
            self._dc_element(metadata, "contributor", contributor)

    def _encode_metadata_v2(self, root: ET._Element) -> None:
        md = self.metadata
        metadata = ET.SubElement(root, _o("metadata"))
        self._encode_common_dc(metadata)

        if md.identifier is not None and md.identifier.value and md.identifier.scheme:
            id_el = metadata.find(_dc("identifier"))
            if id_el is not None:
                set_attr(id_el, _o("scheme"), md.identifier.scheme, operation=_OP)
        for creator in md.creators:
            creator_el = self._dc_element(metadata, "creator", creator)
            if creator_el is not None:
                creator_el.set(_o("role"), "aut")
        self._dc_element(metadata, "subject", ", ".join(s for s in md.subjects if s.strip()))
        self._dc_element(metadata, "rights", ", ".join(r for r in md.rights if r.strip()))
        if md.date_published is not None:
            self._dc_element(metadata, "date", format_date(md.date_published)).set(_o("event"), "publication")
        if md.date_modified is not None:
            self._dc_element(metadata, "date", format_date(md.date_modified)).set(_o("event"), "modification")

        cover = self.find_manifest(prop="cover-image")
        if cover is not None:
            self._meta_name(metadata, "cover", cover.id)
        if md.generator:
            self._meta_name(metadata, "generator", md.generator)
        for item in md.meta:
            name = item.name or item.property
            if not name:
                continue
            self._meta_name(metadata, name, item.content or item.value)

    def _encode_metadata_v3(self, root: ET._Element) -> None:
        md = self.metadata
        metadata = ET.SubElement(root, _o("metadata"))
        self._encode_common_dc(metadata)

        if md.identifier is not None and md.identifier.value and md.identifier.scheme:
            scheme_el = ET.SubElement(metadata, _o("meta"))
            set_attr(scheme_el, "refines", f"#{md.identifier.id}", operation=_OP)
            scheme_el.set("property", "identifier-type")
            set_text(scheme_el, md.identifier.scheme, operation=_OP)
        for creator in md.creators:
            self._dc_element(metadata, "creator", creator)
        for subject in md.subjects:
            self._dc_element(metadata, "subject", subject)
        for rights in md.rights:
            self._dc_element(metadata, "rights", rights)
        if md.date_published is not None:
            self._dc_element(metadata, "date", format_date(md.date_published))
        if md.date_modified is not None:
            modified = ET.SubElement(metadata, _o("meta"))
            modified.set("property", "dcterms:modified")
            modified.text = format_timestamp(md.date_modified)
        if md.generator:
            self._meta_name(metadata, "generator", md.generator)
        for item in md.meta:
            prop = item.property or item.name
            if not prop:
                continue
            meta = ET.SubElement(metadata, _o("meta"))
            set_attr(meta, "property", prop, operation=_OP)
            for attr, value in (("refines", item.refines), ("scheme", item.scheme), ("id", item.id)):
                if value:
                    set_attr(meta, attr, value, operation=_OP)
            set_text(meta, item.value or item.content, operation=_OP)

    @staticmethod
    def _meta_name(parent: ET._Element, name: str, content: str) -> None:
        meta = ET.SubElement(parent, _o("meta"))
        set_attr(meta, "name", name, operation=_OP)
        set_attr(meta, "content", content, operation=_OP)

    # ------------------------------------------------------------------
    # Manifest / spine
    # ------------------------------------------------------------------
    def _encode_manifest(self, root: ET._Element, v3: bool) -> None:
        manifest = ET.SubElement(root, _o("manifest"))
        for item in self.manifest:
            item_el = ET.SubElement(manifest, _o("item"))
            set_attr(item_el, "id", item.id, operation=_OP)
            set_attr(item_el, "href", item.href, operation=_OP)
            set_attr(item_el, "media-type", item.media_type, operation=_OP)
            # 2.0 has no manifest properties; the cover is flagged via <meta name="cover">.
            if v3 and item.properties.strip():
                item_el.set("properties", item.properties.strip())

    def _encode_spine(self, root: ET._Element, v3: bool) -> None:
        spine = ET.SubElement(root, _o("spine"))
        ncx = self.find_manifest(media_type=NCX_MEDIA_TYPE)
        if ncx is not None:
            spine.set("toc", ncx.id)
        for ref in self.spine:
            ref_el = ET.SubElement(spine, _o("itemref"))
            set_attr(ref_el, "idref", ref.idref, operation=_OP)
            if not ref.linear:
                ref_el.set("linear", "no")
            if v3 and ref.properties.strip():
                ref_el.set("properties", ref.properties.strip())
