"""Root test configuration: blank containers, settings and body inspection helpers"""

import xml.etree.ElementTree as ET
import zipfile

import pytest

from wordmd.config import Settings
from wordmd.core.container import create_container


W = "{http://schemas.openxmlformats.org/wordprocessingml/2006/main}"


@pytest.fixture(name="container")
def container_fixture(tmp_path):
    """A fresh package with an empty body and no side channel."""
    return create_container(tmp_path / "doc.docx")


@pytest.fixture(name="settings")
def settings_fixture(tmp_path):
    """Default settings with staging directories kept under tmp_path."""
    staging_root = tmp_path / "staging"
    staging_root.mkdir()
    return Settings(staging_root=str(staging_root))


@pytest.fixture(name="read_body")
def read_body_fixture():
    """Return a function that loads w:body from a container."""
    def _read(path):
        with zipfile.ZipFile(path) as zf:
            root = ET.fromstring(zf.read("word/document.xml"))
        return root.find(f"{W}body")
    return _read


@pytest.fixture(name="paragraphs")
def paragraphs_fixture(read_body):
    """Return a function listing the w:p children of a container's body."""
    def _paragraphs(path):
        return read_body(path).findall(f"{W}p")
    return _paragraphs
