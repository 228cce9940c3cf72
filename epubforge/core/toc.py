from __future__ import annotations

"""Navigation (table of contents) model and its two encoders.

``TocElement`` is a link-only tree node. It is usually projected from the
section tree by :class:`~epubforge.core.builder.EpubBuilder`, but callers may
build one by hand; either way a child's level is always greater than its
parent's.

``TocNav.encode`` renders the tree as:

- EPUB 2.0: an NCX 2005-1 document. Every ``navPoint`` gets a ``playOrder``
  from a pre-order walk that starts at 0 on each call, and the head records
  the deepest level as ``dtb:depth``.
- EPUB 3.0: an XHTML navigation document with nested ``<ol>`` lists.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterator, List, Tuple

from lxml import etree as ET

from epubforge.core.exceptions import EncodingFailedError
from epubforge.core.models import EpubVersion
from epubforge.core.utils import serialize_xml, set_attr, set_text
from epubforge.core.xhtml import HTML_DOCTYPE, OPS_NS, XHTML_NS

__all__ = ["TocElement", "TocNav", "NCX_NS"]

logger = logging.getLogger(__name__)

NCX_NS = "http://www.daisy.org/z3986/2005/ncx/"
NCX_DOCTYPE = ('<!DOCTYPE ncx PUBLIC "-//NISO//DTD ncx 2005-1//EN" '
               '"http://www.daisy.org/z3986/2005/ncx-2005-1.dtd">')
XML_LANG = "{http://www.w3.org/XML/1998/namespace}lang"
DEPTH_META = "dtb:depth"


def _n(tag: str) -> str:
    return f"{{{NCX_NS}}}{tag}"


def _x(tag: str) -> str:
    return f"{{{XHTML_NS}}}{tag}"


@dataclass
class TocElement:
    """One entry of the table of contents."""

    url: str
    title: str
    level: int = 1
    children: List["TocElement"] = field(default_factory=list)

    def add_child(self, child: "TocElement") -> "TocElement":
        """Append *child*; if its level is not below ours, renumber its subtree."""
        if child.level <= self.level:
            child._relevel(self.level + 1)
        self.children.append(child)
        return self

    def _relevel(self, level: int) -> None:
        stack = [(self, level)]
        while stack:
            node, current = stack.pop()
            node.level = current
            stack.extend((c, current + 1) for c in node.children)

    def iter_tree(self) -> Iterator["TocElement"]:
        """Pre-order iteration over this entry and its descendants."""
        yield self
        for child in self.children:
            yield from child.iter_tree()


@dataclass
class TocNav:
    """Navigation document: title, language, head metadata and entries."""

    title: str = ""
    lang: str = ""
    metadata: List[Tuple[str, str]] = field(default_factory=list)
    elements: List[TocElement] = field(default_factory=list)

    def add_metadata(self, name: str, value: str) -> "TocNav":
        self.metadata.append((name, value))
        return self

    def add_element(self, element: TocElement) -> "TocNav":
        self.elements.append(element)
        return self

    def max_depth(self) -> int:
        """Deepest nesting found by walking the tree (roots count as 1)."""
        def _depth(nodes: List[TocElement]) -> int:
            return max((1 + _depth(n.children) for n in nodes), default=0)

        return _depth(self.elements)

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------
    def encode(self, version: EpubVersion) -> str:
        """Serialize the navigation document for *version*.

        Raises
        ------
        EncodingFailedError
            On invalid characters or a malformed (e.g. cyclic) tree.
        """
        try:
            if version is EpubVersion.V20:
                return self.encode_ncx()
            return self.encode_nav()
        except RecursionError as exc:
            logger.error("Navigation tree for '%s' is too deep or cyclic", self.title)
            raise EncodingFailedError("Navigation tree is too deep or cyclic", identifier=self.title or None,
                                      operation="encode_toc", cause=exc) from exc

    def encode_ncx(self) -> str:
        root = ET.Element(_n("ncx"), nsmap={None: NCX_NS})
        root.set("version", "2005-1")
        if self.lang:
            set_attr(root, XML_LANG, self.lang, operation="encode_toc")

        head = ET.SubElement(root, _n("head"))
        for name, content in self.metadata:
            if name == DEPTH_META:
                continue
            meta = ET.SubElement(head, _n("meta"))
            set_attr(meta, "name", name, operation="encode_toc")
            set_attr(meta, "content", content, operation="encode_toc")
        depth = ET.SubElement(head, _n("meta"))
        depth.set("name", DEPTH_META)
        depth.set("content", str(self.max_depth()))

        doc_title = ET.SubElement(root, _n("docTitle"))
        set_text(ET.SubElement(doc_title, _n("text")), self.title, operation="encode_toc")

        nav_map = ET.SubElement(root, _n("navMap"))
        counter = [0]

        def _nav_point(parent: ET._Element, element: TocElement) -> None:
            order = counter[0]
            counter[0] += 1
            point = ET.SubElement(parent, _n("navPoint"))
            point.set("id", f"navPoint-{order}")
            point.set("playOrder", str(order))
            label = ET.SubElement(point, _n("navLabel"))
            set_text(ET.SubElement(label, _n("text")), element.title, operation="encode_toc")
            content = ET.SubElement(point, _n("content"))
            set_attr(content, "src", element.url, operation="encode_toc")
            for child in element.children:
                _nav_point(point, child)

        for element in self.elements:
            _nav_point(nav_map, element)

        logger.debug("Encoded NCX with %d entries", counter[0])
        return serialize_xml(root, NCX_DOCTYPE, operation="encode_toc")

    def encode_nav(self) -> str:
        html = ET.Element(_x("html"), nsmap={None: XHTML_NS, "epub": OPS_NS})
        if self.lang:
            set_attr(html, XML_LANG, self.lang, operation="encode_toc")
            set_attr(html, "lang", self.lang, operation="encode_toc")

        head = ET.SubElement(html, _x("head"))
        set_text(ET.SubElement(head, _x("title")), self.title, operation="encode_toc")
        for name, content in self.metadata:
            meta = ET.SubElement(head, _x("meta"))
            set_attr(meta, "name", name, operation="encode_toc")
            set_attr(meta, "content", content, operation="encode_toc")

        body = ET.SubElement(html, _x("body"))
        nav = ET.SubElement(body, _x("nav"))
        nav.set(f"{{{OPS_NS}}}type", "toc")
        nav.set("id", "toc")
        set_text(ET.SubElement(nav, _x("h1")), self.title, operation="encode_toc")

        def _list(parent: ET._Element, elements: List[TocElement]) -> None:
            ol = ET.SubElement(parent, _x("ol"))
            for element in elements:
                li = ET.SubElement(ol, _x("li"))
                anchor = ET.SubElement(li, _x("a"))
                set_attr(anchor, "href", element.url, operation="encode_toc")
                set_text(anchor, element.title, operation="encode_toc")
                if element.children:
                    _list(li, element.children)

        _list(nav, self.elements)
        return serialize_xml(html, HTML_DOCTYPE, operation="encode_toc")
