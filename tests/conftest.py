"""Shared fixtures for the epubforge test-suite.

Asset fixtures write small placeholder files into ``tmp_path``; the builder
only checks that sources exist and copies them verbatim, so their content is
irrelevant.
"""

import logging
import os
import sys
from pathlib import Path

import pytest

# Ensure project root is importable when running pytest from repository root
_REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if _REPO_ROOT not in sys.path:
    sys.path.insert(0, _REPO_ROOT)

pytest.importorskip("lxml")
from lxml import etree as ET

from epubforge.config import ConfigManager
from epubforge.core.builder import EpubBuilder
from epubforge.core.models import EpubVersion

# Configure test logging
logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

NS = {
    "opf": "http://www.idpf.org/2007/opf",
    "dc": "http://purl.org/dc/elements/1.1/",
    "ncx": "http://www.daisy.org/z3986/2005/ncx/",
    "x": "http://www.w3.org/1999/xhtml",
    "epub": "http://www.idpf.org/2007/ops",
    "c": "urn:oasis:names:tc:opendocument:xmlns:container",
}


def parse(text: str) -> ET._Element:
    """Parse a generated document (which carries an encoding declaration)."""
    return ET.fromstring(text.encode("utf-8"))


@pytest.fixture(autouse=True)
def isolated_config(tmp_path_factory, monkeypatch):
    """Point user overrides at an empty folder and drop the cached ConfigManager."""
    config_dir = tmp_path_factory.mktemp("user_config")
    monkeypatch.setenv("EPUBFORGE_CONFIG_DIR", str(config_dir))
    ConfigManager._instance = None
    yield config_dir
    ConfigManager._instance = None


@pytest.fixture
def assets(tmp_path):
    """Create one placeholder file per asset class and return their paths."""
    folder = tmp_path / "assets"
    (folder / "alt").mkdir(parents=True)
    files = {
        "cover": folder / "cover.jpg",
        "cover_alt": folder / "alt" / "cover.jpg",
        "photo": folder / "photo.png",
        "css": folder / "style.css",
        "font": folder / "serif.ttf",
        "video": folder / "clip.mp4",
        "audio": folder / "track.mp3",
    }
    files["cover"].write_bytes(b"\xff\xd8\xff\xe0 cover")
    files["cover_alt"].write_bytes(b"\xff\xd8\xff\xe0 another cover")
    files["photo"].write_bytes(b"\x89PNG photo")
    files["css"].write_text("p { margin: 0; }", encoding="utf-8")
    files["font"].write_bytes(b"\x00\x01\x00\x00")
    files["video"].write_bytes(b"video")
    files["audio"].write_bytes(b"audio")
    return {key: str(path) for key, path in files.items()}


@pytest.fixture
def missing_file(tmp_path) -> str:
    return str(tmp_path / "does-not-exist.jpg")


@pytest.fixture(params=[EpubVersion.V20, EpubVersion.V30], ids=["epub2", "epub3"])
def version(request):
    return request.param


@pytest.fixture
def builder(version):
    return EpubBuilder("Test Book", version)


@pytest.fixture
def output_dir(tmp_path) -> Path:
    return tmp_path / "book"


@pytest.fixture
def ns():
    return NS


@pytest.fixture
def parse_xml():
    return parse
