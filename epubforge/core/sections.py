from __future__ import annotations

"""The section tree: ordered forest of content documents.

Every section is addressed by its file name, which is unique across the whole
forest. A flat registry of file names (plus a filename -> node index) mirrors
the tree so existence checks and lookups do not walk it; the tree itself
still owns the nodes and defines order.

Sections are attached once and never reparented. The only structural removal
is :meth:`SectionTree.detach`, used when the cover is replaced.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from epubforge.core.exceptions import FilenameExistsError, ParentNotFoundError
from epubforge.core.utils import ensure_extension, normalize_name
from epubforge.core.xhtml import XHtmlDocument

__all__ = ["Section", "SectionTree", "SECTION_EXTENSION"]

logger = logging.getLogger(__name__)

SECTION_EXTENSION = ".xhtml"


@dataclass
class Section:
    """A content node: one XHTML document plus ordered children."""

    filename: str
    title: str
    document: XHtmlDocument
    children: List["Section"] = field(default_factory=list)
    stylesheet: Optional[str] = None

    def iter_tree(self, depth: int = 1) -> Iterator[Tuple["Section", int]]:
        """Yield ``(section, depth)`` for this node and its descendants in pre-order."""
        yield self, depth
        for child in self.children:
            yield from child.iter_tree(depth + 1)


class SectionTree:
    """Forest of :class:`Section` nodes with global file name governance."""

    def __init__(self) -> None:
        self.roots: List[Section] = []
        self._index: Dict[str, Section] = {}

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def __contains__(self, filename: object) -> bool:
        return filename in self._index

    def __len__(self) -> int:
        return len(self._index)

    def filenames(self) -> List[str]:
        """Registered file names in tree (pre-order) order."""
        return [section.filename for section, _ in self.iter_sections()]

    def get(self, filename: str) -> Optional[Section]:
        return self._index.get(filename)

    def find(self, filename: str) -> Optional[Section]:
        """Depth-first search of the forest for *filename*.

        Each root is searched in turn, pre-order. Used where the tree itself
        is the source of truth (attachment and detachment); :meth:`get`
        answers from the index.
        """
        located = self._locate(filename)
        return located[0] if located else None

    def iter_sections(self) -> Iterator[Tuple[Section, int]]:
        """Yield ``(section, depth)`` pairs in pre-order; roots have depth 1."""
        for root in self.roots:
            yield from root.iter_tree(1)

    def max_depth(self) -> int:
        return max((depth for _, depth in self.iter_sections()), default=0)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def resolve_filename(self, explicit_filename: Optional[str] = None) -> str:
        """Return the file name a new section would get.

        Raises
        ------
        FilenameExistsError
            If *explicit_filename* (after adding the extension) is registered.
        """
        if explicit_filename is not None and normalize_name(explicit_filename):
            filename = ensure_extension(normalize_name(explicit_filename), SECTION_EXTENSION)
            if filename in self._index:
                logger.warning("Section file name already registered: %s", filename)
                raise FilenameExistsError("File name already registered", identifier=filename,
                                          operation="add_section")
            return filename

        number = len(self._index) + 1
        while f"section_{number}{SECTION_EXTENSION}" in self._index:
            number += 1
        return f"section_{number}{SECTION_EXTENSION}"

    def check_parent(self, parent_filename: Optional[str]) -> None:
        """Raise ``ParentNotFoundError`` unless *parent_filename* is empty or registered."""
        if parent_filename and parent_filename not in self._index:
            logger.warning("Parent section not found: %s", parent_filename)
            raise ParentNotFoundError("Parent section is not registered", identifier=parent_filename,
                                      operation="add_section")

    def add(self, section: Section, parent_filename: Optional[str] = None) -> Section:
        """Attach *section* as the last child of *parent_filename*, or as a new root.

        The section's file name must not be registered yet.
        """
        if section.filename in self._index:
            raise FilenameExistsError("File name already registered", identifier=section.filename,
                                      operation="add_section")
        self.check_parent(parent_filename)

        if parent_filename:
            parent = self.find(parent_filename)
            if parent is None:
                # The registry knows the name but the tree does not.
                raise RuntimeError(f"Section registry out of sync with tree for '{parent_filename}'")
            parent.children.append(section)
        else:
            self.roots.append(section)

        for node, _ in section.iter_tree():
            self._index[node.filename] = node
        logger.debug("Added section %s under %s", section.filename, parent_filename or "<root>")
        return section

    def detach(self, filename: str) -> Optional[Tuple[Section, Optional[Section], int]]:
        """Remove the section named *filename* (with its subtree) from the forest.

        Returns ``(section, parent, index)`` so the caller can re-attach it with
        :meth:`reattach`, or ``None`` when the name is unknown.
        """
        located = self._locate(filename)
        if located is None:
            return None
        section, parent, index = located
        siblings = parent.children if parent is not None else self.roots
        del siblings[index]
        for node, _ in section.iter_tree():
            self._index.pop(node.filename, None)
        logger.debug("Detached section %s", filename)
        return section, parent, index

    def reattach(self, section: Section, parent: Optional[Section], index: int) -> None:
        """Undo a :meth:`detach`, putting *section* back at its original position."""
        siblings = parent.children if parent is not None else self.roots
        siblings.insert(min(index, len(siblings)), section)
        for node, _ in section.iter_tree():
            self._index[node.filename] = node

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _locate(self, filename: str) -> Optional[Tuple[Section, Optional[Section], int]]:
        def _search(nodes: List[Section], parent: Optional[Section]):
            for idx, node in enumerate(nodes):
                if node.filename == filename:
                    return node, parent, idx
                found = _search(node.children, node)
                if found:
                    return found
            return None

        return _search(self.roots, None)
