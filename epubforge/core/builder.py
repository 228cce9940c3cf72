from __future__ import annotations

"""High-level builder assembling a complete EPUB package in memory.

Entry-point for any front-end (script, service, API) that needs to produce a
book. The builder owns the resource registry, the section tree, the cover
slot and the bibliographic metadata; :meth:`EpubBuilder.finalize` renders
every document and :meth:`EpubBuilder.output` writes them to a folder.

Thread-safety
-------------
All public methods run under one re-entrant lock, so a builder may be shared
between threads; calls are applied in whatever order they acquire the lock.

Examples
--------
    builder = EpubBuilder("My Book", EpubVersion.V30)
    builder.add_creator("Jane Doe")
    chapter = builder.add_section("Chapter 1", "<p>Hello</p>")
    builder.add_sub_section(chapter, "1.1", "<p>Nested</p>")
    builder.set_cover("art/cover.jpg")
    builder.output("build/my-book")
"""

import dataclasses
import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union
from urllib.parse import quote

from lxml import etree as ET

from epubforge.config import ConfigManager
from epubforge.core.exceptions import (
    EpubError,
    InvalidMetadataError,
    MediaTypeUnknownError,
    SourceNotFoundError,
)
from epubforge.core.media import guess_media_type, is_image, media_type_or_octet_stream
from epubforge.core.models import (
    CONTENT_FOLDER_NAME,
    META_INF_FOLDER_NAME,
    NAV_FILE_NAME,
    NCX_FILE_NAME,
    PACKAGE_FILE_NAME,
    TEXT_FOLDER_NAME,
    AssetClass,
    BindingItem,
    CoverSlot,
    EpubVersion,
    GuideReference,
    Identifier,
    ManifestItem,
    MetaItem,
    PackageMetadata,
    SpineItemRef,
)
from epubforge.core.opf import NCX_MEDIA_TYPE, Package
from epubforge.core.resources import ResourceRegistry
from epubforge.core.sections import Section, SectionTree
from epubforge.core.toc import TocElement, TocNav
from epubforge.core.utils import generate_book_uuid, make_xml_id
from epubforge.core.writer import EPUB_MIMETYPE, container_xml, write_epub_folder
from epubforge.core.xhtml import XHtmlDocument
from epubforge.version import get_version

logger = logging.getLogger(__name__)

__all__ = ["EpubBuilder"]

_ID_PREFIXES = {
    AssetClass.IMAGE: "image",
    AssetClass.FONT: "font",
    AssetClass.VIDEO: "video",
    AssetClass.AUDIO: "audio",
    AssetClass.STYLESHEET: "css",
}


def _text_href(filename: str) -> str:
    return f"{TEXT_FOLDER_NAME}/{quote(filename)}"


@dataclass
class _StagedCover:
    """Everything removed by a cover teardown, kept until the new cover is in place."""

    slot: CoverSlot
    detached: Optional[Tuple[Section, Optional[Section], int]]
    image_source: Optional[str]
    stylesheet_source: Optional[str]


class EpubBuilder:
    """Builder-style façade over the registry, the section tree and the encoders."""

    def __init__(self, title: str = "", version: Union[EpubVersion, str] = EpubVersion.V30) -> None:
        self._lock = threading.RLock()
        self._defaults = ConfigManager().get_epub_defaults()

        self.version = version if isinstance(version, EpubVersion) else EpubVersion(str(version))
        generator = self._defaults.get("generator") or "epubforge"
        self.metadata = PackageMetadata(
            title=title,
            language=self._defaults.get("language") or "en",
            identifier=Identifier(value=generate_book_uuid(), scheme="UUID"),
            generator=f"{generator} {get_version()}",
        )
        self.resources = ResourceRegistry()
        self.sections = SectionTree()
        self._cover: Optional[CoverSlot] = None
        self._toc_metadata: List[Tuple[str, str]] = []
        self._guide: List[GuideReference] = []
        self._bindings: List[BindingItem] = []

    # ------------------------------------------------------------------
    # Bibliographic metadata
    # ------------------------------------------------------------------
    def set_title(self, title: str) -> "EpubBuilder":
        with self._lock:
            self.metadata.title = title
        return self

    def set_language(self, language: str) -> "EpubBuilder":
        with self._lock:
            self.metadata.language = language
        return self

    def set_identifier(self, value: str, scheme: str = "", id: str = "BookId") -> "EpubBuilder":
        with self._lock:
            self.metadata.identifier = Identifier(value=value, id=id, scheme=scheme)
        return self

    def add_creator(self, creator: str) -> "EpubBuilder":
        with self._lock:
            self.metadata.creators.append(creator)
        return self

    def add_subject(self, subject: str) -> "EpubBuilder":
        with self._lock:
            self.metadata.subjects.append(subject)
        return self

    def add_contributor(self, contributor: str) -> "EpubBuilder":
        with self._lock:
            self.metadata.contributors.append(contributor)
        return self

    def add_rights(self, rights: str) -> "EpubBuilder":
        with self._lock:
            self.metadata.rights.append(rights)
        return self

    def set_metadata(self, **fields: object) -> "EpubBuilder":
        """Set scalar fields of :class:`PackageMetadata` by name.

        Accepted names: description, category, publisher, format, source,
        relation, coverage, date_published, date_modified.

        Raises
        ------
        InvalidMetadataError
            For an unknown field or a date that is not a ``datetime``. No
            field of the call is applied in that case.
        """
        allowed = {"description", "category", "publisher", "format", "source", "relation", "coverage",
                   "date_published", "date_modified"}
        for name, value in fields.items():
            if name not in allowed:
                raise InvalidMetadataError("Unsupported metadata field", identifier=name,
                                           operation="set_metadata")
            if name.startswith("date_") and value is not None and not isinstance(value, datetime):
                raise InvalidMetadataError("Dates must be datetime objects", identifier=name,
                                           operation="set_metadata")
        with self._lock:
            for name, value in fields.items():
                setattr(self.metadata, name, value)
        return self

    def add_metadata(self, name: str, value: str) -> "EpubBuilder":
        """Add a free-form package metadata entry (``name`` in 2.0, ``property`` in 3.0)."""
        with self._lock:
            self.metadata.meta.append(MetaItem(name=name, content=value, property=name, value=value))
        return self

    def add_meta_item(self, item: MetaItem) -> "EpubBuilder":
        with self._lock:
            self.metadata.meta.append(item)
        return self

    def add_toc_metadata(self, name: str, value: str) -> "EpubBuilder":
        """Add a ``<meta name content>`` pair to the navigation document head."""
        with self._lock:
            self._toc_metadata.append((name, value))
        return self

    def add_guide(self, ref_type: str, title: str, href: str) -> "EpubBuilder":
        with self._lock:
            self._guide.append(GuideReference(type=ref_type, title=title, href=href))
        return self

    def add_binding(self, media_type: str, handler: str) -> "EpubBuilder":
        with self._lock:
            self._bindings.append(BindingItem(media_type=media_type, handler=handler))
        return self

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------
    def add_image(self, source: Union[str, Path], name: Optional[str] = None) -> str:
        """Register an image; return its path relative to section documents."""
        with self._lock:
            return self.resources.register(AssetClass.IMAGE, source, name)

    def add_font(self, source: Union[str, Path], name: Optional[str] = None) -> str:
        with self._lock:
            return self.resources.register(AssetClass.FONT, source, name)

    def add_video(self, source: Union[str, Path], name: Optional[str] = None) -> str:
        with self._lock:
            return self.resources.register(AssetClass.VIDEO, source, name)

    def add_audio(self, source: Union[str, Path], name: Optional[str] = None) -> str:
        with self._lock:
            return self.resources.register(AssetClass.AUDIO, source, name)

    def add_stylesheet(self, source: Union[str, Path], name: Optional[str] = None) -> str:
        with self._lock:
            return self.resources.register(AssetClass.STYLESHEET, source, name)

    # ------------------------------------------------------------------
    # Sections
    # ------------------------------------------------------------------
    def add_section(self, title: str, body: str, filename: Optional[str] = None,
                    stylesheet: Optional[Union[str, Path]] = None) -> str:
        """Append a top-level section; return its file name."""
        with self._lock:
            return self._add_section(None, title, body, filename, stylesheet).filename

    def add_sub_section(self, parent: Optional[str], title: str, body: str, filename: Optional[str] = None,
                        stylesheet: Optional[Union[str, Path]] = None) -> str:
        """Append a section as the last child of *parent* (a top-level section when empty).

        Raises
        ------
        ParentNotFoundError
            If *parent* is not a registered section file name.
        """
        with self._lock:
            return self._add_section(parent, title, body, filename, stylesheet).filename

    def _add_section(self, parent: Optional[str], title: str, body: str, filename: Optional[str],
                     stylesheet: Optional[Union[str, Path]]) -> Section:
        resolved = self.sections.resolve_filename(filename)
        self.sections.check_parent(parent)

        document = XHtmlDocument(title=title, body=body)
        css_name = None
        if stylesheet:
            css_name = self.resources.add(AssetClass.STYLESHEET, stylesheet)
            document.add_stylesheet(ResourceRegistry.href(AssetClass.STYLESHEET, css_name))

        section = Section(filename=resolved, title=title, document=document, stylesheet=css_name)
        try:
            self.sections.add(section, parent)
        except EpubError:
            if css_name:
                self.resources.remove(AssetClass.STYLESHEET, css_name)
            raise
        logger.debug("Section %s '%s' added under %s", resolved, title, parent or "<root>")
        return section

    # ------------------------------------------------------------------
    # Cover
    # ------------------------------------------------------------------
    @property
    def cover(self) -> Optional[CoverSlot]:
        return self._cover

    def set_cover(self, image: Union[str, Path], stylesheet: Optional[Union[str, Path]] = None) -> str:
        """Install *image* as the book cover, replacing any previous cover.

        The old cover's section, image and stylesheet are removed first. If
        installing the new cover then fails, the old one is put back and the
        error is re-raised, so the builder never ends up half-covered.

        Returns:
            File name of the generated cover section

        Raises:
            SourceNotFoundError: The image or stylesheet does not exist
            MediaTypeUnknownError: The image is not a recognised image type
        """
        image = str(image)
        with self._lock:
            if not os.path.isfile(image):
                raise SourceNotFoundError("Cover image does not exist", identifier=image, operation="set_cover")
            if not is_image(image):
                raise MediaTypeUnknownError(f"Unsupported cover media type: {guess_media_type(image)}", identifier=image,
                                            operation="set_cover")
            if stylesheet and not os.path.isfile(str(stylesheet)):
                raise SourceNotFoundError("Cover stylesheet does not exist", identifier=str(stylesheet),
                                          operation="set_cover")

            staged = self._teardown_cover()
            try:
                slot = self._install_cover(image, stylesheet)
            except EpubError:
                logger.warning("Cover install failed for %s, restoring previous cover", image)
                self._restore_cover(staged)
                raise
            self._cover = slot
            logger.info("Cover set: image=%s page=%s", slot.image, slot.filename)
            return slot.filename

    def remove_cover(self) -> bool:
        """Remove the active cover; return ``False`` when none was set."""
        with self._lock:
            return self._teardown_cover() is not None

    def _install_cover(self, image: str, stylesheet: Optional[Union[str, Path]]) -> CoverSlot:
        cover_cfg = self._defaults.get("cover") or {}
        image_name = self.resources.add(AssetClass.IMAGE, image)

        div = ET.Element("div", {"class": "cover"})
        ET.SubElement(div, "img", {"src": ResourceRegistry.href(AssetClass.IMAGE, image_name),
                                   "alt": str(cover_cfg.get("image_alt") or "cover")})
        body = ET.tostring(div, encoding="unicode")
        try:
            section = self._add_section(None, str(cover_cfg.get("title") or "Cover"), body,
                                        str(cover_cfg.get("filename") or "cover.xhtml"), stylesheet)
        except EpubError:
            self.resources.remove(AssetClass.IMAGE, image_name)
            raise
        if not stylesheet and cover_cfg.get("stylesheet"):
            section.document.add_style_content(str(cover_cfg["stylesheet"]))
        return CoverSlot(image=image_name, filename=section.filename, stylesheet=section.stylesheet)

    def _teardown_cover(self) -> Optional[_StagedCover]:
        slot = self._cover
        if slot is None:
            return None
        detached = self.sections.detach(slot.filename)
        css_source = self.resources.remove(AssetClass.STYLESHEET, slot.stylesheet) if slot.stylesheet else None
        image_source = self.resources.remove(AssetClass.IMAGE, slot.image)
        self._cover = None
        logger.debug("Cover removed: image=%s page=%s", slot.image, slot.filename)
        return _StagedCover(slot=slot, detached=detached, image_source=image_source, stylesheet_source=css_source)

    def _restore_cover(self, staged: Optional[_StagedCover]) -> None:
        if staged is None:
            return
        if staged.detached is not None:
            self.sections.reattach(*staged.detached)
        if staged.image_source is not None:
            self.resources.restore(AssetClass.IMAGE, staged.slot.image, staged.image_source)
        if staged.stylesheet_source is not None and staged.slot.stylesheet:
            self.resources.restore(AssetClass.STYLESHEET, staged.slot.stylesheet, staged.stylesheet_source)
        self._cover = staged.slot

    # ------------------------------------------------------------------
    # Projection to encoder inputs
    # ------------------------------------------------------------------
    def build_toc(self) -> TocNav:
        """Project the section tree into a navigation document (links and titles only)."""
        with self._lock:
            nav = TocNav(title=self.metadata.title, lang=self.metadata.language)
            if self.metadata.identifier is not None and self.metadata.identifier.value:
                nav.add_metadata("dtb:uid", self.metadata.identifier.value)
            for name, value in self._toc_metadata:
                nav.add_metadata(name, value)

            def _project(section: Section, level: int) -> TocElement:
                element = TocElement(url=_text_href(section.filename), title=section.title, level=level)
                for child in section.children:
                    element.add_child(_project(child, level + 1))
                return element

            for root in self.sections.roots:
                nav.add_element(_project(root, 1))
            return nav

    def build_package(self) -> Package:
        """Build the package document model from metadata, registry and tree."""
        with self._lock:
            package = Package(metadata=dataclasses.replace(self.metadata, meta=list(self.metadata.meta)))
            used_ids: set = set()

            def _unique(candidate: str) -> str:
                item_id, n = candidate, 2
                while item_id in used_ids:
                    item_id = f"{candidate}-{n}"
                    n += 1
                used_ids.add(item_id)
                return item_id

            if self.version is EpubVersion.V20:
                package.add_manifest(ManifestItem(id=_unique("ncx"), href=NCX_FILE_NAME, media_type=NCX_MEDIA_TYPE))
            else:
                package.add_manifest(ManifestItem(id=_unique("nav"), href=NAV_FILE_NAME,
                                                  media_type="application/xhtml+xml", properties="nav"))

            section_ids: Dict[str, str] = {}
            for section, _ in self.sections.iter_sections():
                section_ids[section.filename] = _unique(make_xml_id("text", section.filename))
                package.add_manifest(ManifestItem(id=section_ids[section.filename],
                                                  href=_text_href(section.filename),
                                                  media_type="application/xhtml+xml"))

            for cls, name, _ in self.resources.items():
                is_cover = cls is AssetClass.IMAGE and self._cover is not None and name == self._cover.image
                package.add_manifest(ManifestItem(id=_unique(make_xml_id(_ID_PREFIXES[cls], name)),
                                                  href=ResourceRegistry.package_href(cls, name),
                                                  media_type=media_type_or_octet_stream(name),
                                                  properties="cover-image" if is_cover else ""))

            spine_order = list(section_ids)
            if self._cover is not None and self._cover.filename in section_ids:
                spine_order.remove(self._cover.filename)
                spine_order.insert(0, self._cover.filename)
            for filename in spine_order:
                package.add_spine(SpineItemRef(idref=section_ids[filename]))

            if self._cover is not None and self.version is EpubVersion.V20:
                package.add_guide(GuideReference(type="cover", title=self.sections.get(self._cover.filename).title,
                                                 href=_text_href(self._cover.filename)))
            for ref in self._guide:
                package.add_guide(ref)
            for binding in self._bindings:
                package.add_binding(binding)
            return package

    # ------------------------------------------------------------------
    # Finalization
    # ------------------------------------------------------------------
    def finalize(self) -> Dict[str, str]:
        """Render every text document of the book.

        Returns:
            Mapping of folder-relative POSIX path -> document text, starting
            with ``mimetype`` and ``META-INF/container.xml``

        Raises:
            InvalidMetadataError: The book has no title
            EncodingFailedError: A document could not be serialized
        """
        with self._lock:
            if not (self.metadata.title or "").strip():
                raise InvalidMetadataError("Book title is required", operation="finalize")
            if self.metadata.date_modified is None:
                self.metadata.date_modified = datetime.now(timezone.utc).replace(microsecond=0)

            nav_file = NCX_FILE_NAME if self.version is EpubVersion.V20 else NAV_FILE_NAME
            documents: Dict[str, str] = {
                "mimetype": EPUB_MIMETYPE,
                f"{META_INF_FOLDER_NAME}/container.xml": container_xml(),
                f"{CONTENT_FOLDER_NAME}/{PACKAGE_FILE_NAME}": self.build_package().encode(self.version),
                f"{CONTENT_FOLDER_NAME}/{nav_file}": self.build_toc().encode(self.version),
            }
            for section, _ in self.sections.iter_sections():
                document = section.document
                if not document.lang:
                    document = dataclasses.replace(document, lang=self.metadata.language)
                documents[f"{CONTENT_FOLDER_NAME}/{TEXT_FOLDER_NAME}/{section.filename}"] = document.encode()

            logger.info("Finalized '%s' (EPUB %s): %d sections, %d resources",
                        self.metadata.title, self.version.value, len(self.sections), len(self.resources))
            return documents

    def output(self, target_dir: Union[str, Path]) -> Path:
        """Finalize and write the unzipped book to *target_dir*.

        Raises:
            IOFailureError: A folder, file or resource copy failed
        """
        with self._lock:
            documents = self.finalize()
            return write_epub_folder(target_dir, documents, list(self.resources.items()))
