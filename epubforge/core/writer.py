"""Folder output for a finalized book.

These utilities handle the last stage after every document has been rendered
in memory:

- Creating the standard EPUB folder structure
- Writing the generated text documents verbatim
- Copying registered resources into their class folders

Zipping the folder into an ``.epub`` archive is left to the caller.
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Dict, Iterable, Tuple, Union

from lxml import etree as ET

from epubforge.core.exceptions import IOFailureError
from epubforge.core.models import (
    CONTENT_FOLDER_NAME,
    META_INF_FOLDER_NAME,
    PACKAGE_FILE_NAME,
    TEXT_FOLDER_NAME,
    AssetClass,
)
from epubforge.core.utils import serialize_xml

logger = logging.getLogger(__name__)

__all__ = [
    "EPUB_MIMETYPE",
    "container_xml",
    "create_epub_folders",
    "write_text_file",
    "copy_resources",
    "write_epub_folder",
]

EPUB_MIMETYPE = "application/epub+zip"
CONTAINER_NS = "urn:oasis:names:tc:opendocument:xmlns:container"


def container_xml() -> str:
    """Return ``META-INF/container.xml`` pointing at the package document."""
    root = ET.Element(f"{{{CONTAINER_NS}}}container", nsmap={None: CONTAINER_NS})
    root.set("version", "1.0")
    rootfiles = ET.SubElement(root, f"{{{CONTAINER_NS}}}rootfiles")
    rootfile = ET.SubElement(rootfiles, f"{{{CONTAINER_NS}}}rootfile")
    rootfile.set("full-path", f"{CONTENT_FOLDER_NAME}/{PACKAGE_FILE_NAME}")
    rootfile.set("media-type", "application/oebps-package+xml")
    return serialize_xml(root, operation="container")


def create_epub_folders(root_dir: Union[str, Path], asset_classes: Iterable[AssetClass] = ()) -> None:
    """Create ``META-INF``, the content root, its text folder and one folder per used asset class."""
    root_dir = Path(root_dir)
    folders = [
        root_dir / META_INF_FOLDER_NAME,
        root_dir / CONTENT_FOLDER_NAME / TEXT_FOLDER_NAME,
    ]
    folders.extend(root_dir / CONTENT_FOLDER_NAME / cls.folder for cls in asset_classes)
    for folder in folders:
        try:
            folder.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.error("I/O FAIL: create folder path=%s", folder, exc_info=True)
            raise IOFailureError("Could not create folder", identifier=str(folder),
                                 operation="create_folder", cause=exc) from exc


def write_text_file(path: Union[str, Path], content: str) -> None:
    """Write *content* to *path* as UTF-8, creating parent folders."""
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8", newline="") as fh:
            fh.write(content)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("I/O: wrote text path=%s chars=%d", path, len(content))
    except OSError as exc:
        # Caller context handles user feedback; file handler captures traceback
        logger.error("I/O FAIL: write text path=%s", path, exc_info=True)
        raise IOFailureError("Could not write file", identifier=str(path), operation="write_file",
                             cause=exc) from exc


def copy_resources(root_dir: Union[str, Path], resources: Iterable[Tuple[AssetClass, str, str]]) -> int:
    """Copy each ``(asset_class, name, source)`` to ``OEBPS/<folder>/<name>``; return the count."""
    content_dir = Path(root_dir) / CONTENT_FOLDER_NAME
    copied = 0
    for cls, name, source in resources:
        target = content_dir / cls.folder / name
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, target)
        except OSError as exc:
            logger.error("I/O FAIL: copy %s -> %s", source, target, exc_info=True)
            raise IOFailureError("Could not copy resource", identifier=source, operation="copy_file",
                                 cause=exc) from exc
        copied += 1
    return copied


def write_epub_folder(root_dir: Union[str, Path], documents: Dict[str, str],
                      resources: Iterable[Tuple[AssetClass, str, str]]) -> Path:
    """Write the complete unzipped book to *root_dir*.

    Args:
        root_dir: Destination folder (created when missing)
        documents: Mapping of root-relative POSIX path -> document text, as
            returned by ``EpubBuilder.finalize()``
        resources: Registry entries to copy

    Returns:
        The destination folder as a ``Path``
    """
    root_dir = Path(root_dir)
    resources = list(resources)
    create_epub_folders(root_dir, {cls for cls, _, _ in resources})

    for rel_path, content in documents.items():
        write_text_file(root_dir / Path(*rel_path.split("/")), content)
    copied = copy_resources(root_dir, resources)

    logger.info("EPUB folder saved to %s (%d documents, %d resources)",
                os.fspath(root_dir), len(documents), copied)
    return root_dir
