from __future__ import annotations

"""XHTML wrapper for section content.

A section's body is a caller-supplied HTML fragment. It is not validated:
the fragment is parsed with lxml's HTML parser (which resolves named
entities and keeps stray ``&`` and ``<`` as text), moved into the XHTML
namespace, then wrapped with the document head (title, stylesheet links,
inline styles). The result is always well-formed XHTML.
"""

import logging
from dataclasses import dataclass, field
from typing import List

import lxml.html
from lxml import etree as ET

from epubforge.core.exceptions import EncodingFailedError
from epubforge.core.utils import serialize_xml, set_attr, set_text

__all__ = ["XHTML_NS", "OPS_NS", "LinkItem", "StyleContent", "XHtmlDocument"]

logger = logging.getLogger(__name__)

XHTML_NS = "http://www.w3.org/1999/xhtml"
OPS_NS = "http://www.idpf.org/2007/ops"
HTML_DOCTYPE = "<!DOCTYPE html>"

_NSMAP = {None: XHTML_NS, "epub": OPS_NS}

# Prefixed attribute names the HTML parser leaves as literal "prefix:name".
_ATTR_NS = {
    "epub": OPS_NS,
    "xml": "http://www.w3.org/XML/1998/namespace",
    "xlink": "http://www.w3.org/1999/xlink",
}


def _x(tag: str) -> str:
    return f"{{{XHTML_NS}}}{tag}"


@dataclass
class LinkItem:
    """``<link>`` element in the document head."""

    href: str
    rel: str = "stylesheet"
    type: str = "text/css"


@dataclass
class StyleContent:
    """Inline ``<style>`` block."""

    value: str
    type: str = "text/css"


@dataclass
class XHtmlDocument:
    """One content document of the book."""

    title: str = ""
    body: str = ""
    lang: str = ""
    links: List[LinkItem] = field(default_factory=list)
    styles: List[StyleContent] = field(default_factory=list)

    def add_link(self, link: LinkItem) -> "XHtmlDocument":
        self.links.append(link)
        return self

    def add_stylesheet(self, href: str) -> "XHtmlDocument":
        return self.add_link(LinkItem(href=href))

    def remove_link(self, href: str) -> None:
        self.links = [link for link in self.links if link.href != href]

    def add_style(self, style: StyleContent) -> "XHtmlDocument":
        self.styles.append(style)
        return self

    def add_style_content(self, css: str) -> "XHtmlDocument":
        return self.add_style(StyleContent(value=css))

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------
    def to_element(self) -> ET._Element:
        html = ET.Element(_x("html"), nsmap=_NSMAP)
        if self.lang:
            set_attr(html, "{http://www.w3.org/XML/1998/namespace}lang", self.lang)
            set_attr(html, "lang", self.lang)

        head = ET.SubElement(html, _x("head"))
        title = ET.SubElement(head, _x("title"))
        set_text(title, self.title)
        for link in self.links:
            link_el = ET.SubElement(head, _x("link"))
            set_attr(link_el, "href", link.href)
            if link.rel.strip():
                set_attr(link_el, "rel", link.rel)
            if link.type.strip():
                set_attr(link_el, "type", link.type)
        for style in self.styles:
            style_el = ET.SubElement(head, _x("style"))
            if style.type.strip():
                set_attr(style_el, "type", style.type)
            set_text(style_el, style.value)

        html.append(self._parse_body())
        return html

    def encode(self) -> str:
        """Return the complete XHTML document string."""
        return serialize_xml(self.to_element(), HTML_DOCTYPE, operation="encode_section")

    def _parse_body(self) -> ET._Element:
        try:
            body = lxml.html.fragment_fromstring(self.body or "", create_parent="body")
        except (ET.ParserError, ValueError) as exc:
            raise EncodingFailedError("Body fragment could not be parsed", identifier=self.title or None,
                                      operation="encode_section", cause=exc) from exc
        lxml.html.html_to_xhtml(body)
        for element in body.iter(ET.Element):
            if any(":" in name and not name.startswith("{") for name in element.attrib):
                _qualify_attributes(element)
        return body


def _qualify_attributes(element: ET._Element) -> None:
    """Turn literal ``epub:type`` style attribute names into namespaced ones."""
    items = list(element.attrib.items())
    element.attrib.clear()
    for name, value in items:
        if ":" in name and not name.startswith("{"):
            prefix, local = name.split(":", 1)
            uri = _ATTR_NS.get(prefix)
            if uri is None:
                logger.debug("Dropping attribute %s with unknown prefix on <%s>", name, element.tag)
                continue
            name = f"{{{uri}}}{local}"
        set_attr(element, name, value, operation="encode_section")
