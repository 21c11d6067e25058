"""Render Blocks into WordprocessingML paragraphs and rewrite the native body"""

import io
import logging
import re
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Optional

from wordmd.core import container as store
from wordmd.core import ooxml
from wordmd.core.convert.parse import clamp_heading_level, parse_markdown
from wordmd.core.models import Block, BlockKind, Inline, InlineKind
from wordmd.core.ooxml import qn
from wordmd.errors import ContainerError, ConversionWarning


logger = logging.getLogger(__name__)

BULLET_NUM_ID = "1"
ORDERED_NUM_ID = "2"
CODE_STYLE_ID = "Code"

# ElementTree reserves ns0, ns1, ... for prefixes it generates itself
RESERVED_PREFIX_RE = re.compile(r"ns\d+$")


def heading_style_id(level: int) -> str:
    """Heading style id for a markdown heading level (clamped to 1-6)."""
    return f"Heading{clamp_heading_level(level)}"


def _warn(warnings: list[ConversionWarning], message: str) -> None:
    logger.warning(message)
    warnings.append(ConversionWarning(message))


def _text(parent: ET.Element, value: str) -> ET.Element:
    t = ET.SubElement(parent, qn("w:t"))
    t.set(qn("xml:space"), "preserve")
    t.text = value
    return t


def _run(paragraph: ET.Element, bold: bool = False, italic: bool = False, font: Optional[str] = None) -> ET.Element:
    r = ET.SubElement(paragraph, qn("w:r"))
    if bold or italic or font:
        rpr = ET.SubElement(r, qn("w:rPr"))
        if font:
            fonts = ET.SubElement(rpr, qn("w:rFonts"))
            fonts.set(qn("w:ascii"), font)
            fonts.set(qn("w:hAnsi"), font)
        if bold:
            ET.SubElement(rpr, qn("w:b"))
        if italic:
            ET.SubElement(rpr, qn("w:i"))
    return r


def render_inlines(
    paragraph: ET.Element,
    inlines: list[Inline],
    warnings: list[ConversionWarning],
    code_font: str = "Courier New",
    bold: bool = False,
    italic: bool = False,
    ) -> None:
    """Append one run per inline span; emphasis recurses with inherited formatting."""
    for span in inlines:
        if span.kind == InlineKind.text:
            _text(_run(paragraph, bold, italic), span.text)
        elif span.kind == InlineKind.strong:
            render_inlines(paragraph, span.children, warnings, code_font, True, italic)
        elif span.kind == InlineKind.emphasis:
            render_inlines(paragraph, span.children, warnings, code_font, bold, True)
        elif span.kind == InlineKind.code:
            _text(_run(paragraph, bold, italic, font=code_font), span.text)
        elif span.kind == InlineKind.line_break:
            ET.SubElement(_run(paragraph, bold, italic), qn("w:br"))
        else:
            _warn(warnings, f"Unsupported inline type: {span.source or span.kind.value}")


def _paragraph(style: Optional[str] = None) -> tuple[ET.Element, ET.Element]:
    p = ET.Element(qn("w:p"))
    ppr = ET.SubElement(p, qn("w:pPr"))
    if style:
        ET.SubElement(ppr, qn("w:pStyle")).set(qn("w:val"), style)
    return p, ppr


def _strip_empty_ppr(p: ET.Element, ppr: ET.Element) -> ET.Element:
    if len(ppr) == 0:
        p.remove(ppr)
    return p


def render_block(block: Block, warnings: list[ConversionWarning], code_font: str = "Courier New") -> Optional[ET.Element]:
    """Render one Block into a w:p element, or None (with a warning) when unsupported."""
    if block.kind == BlockKind.heading:
        p, ppr = _paragraph(heading_style_id(block.level or 1))
        render_inlines(p, block.inlines, warnings, code_font)
        return p

    if block.kind == BlockKind.paragraph:
        p, ppr = _paragraph()
        render_inlines(p, block.inlines, warnings, code_font)
        return _strip_empty_ppr(p, ppr)

    if block.kind == BlockKind.list_item:
        p, ppr = _paragraph()
        num = ET.SubElement(ppr, qn("w:numPr"))
        ET.SubElement(num, qn("w:ilvl")).set(qn("w:val"), "0")
        ET.SubElement(num, qn("w:numId")).set(qn("w:val"), ORDERED_NUM_ID if block.ordered else BULLET_NUM_ID)
        render_inlines(p, block.inlines, warnings, code_font)
        return p

    if block.kind == BlockKind.code:
        p, ppr = _paragraph(CODE_STYLE_ID)
        _text(_run(p, font=code_font), block.text)
        return p

    if block.kind == BlockKind.thematic_break:
        p, ppr = _paragraph()
        borders = ET.SubElement(ppr, qn("w:pBdr"))
        bottom = ET.SubElement(borders, qn("w:bottom"))
        for key, value in (("val", "single"), ("sz", "6"), ("space", "1"), ("color", "auto")):
            bottom.set(qn(f"w:{key}"), value)
        return p

    _warn(warnings, f"Unsupported block type: {block.source or block.kind.value}")
    return None


def render_blocks(blocks: list[Block], code_font: str = "Courier New") -> tuple[list[ET.Element], list[ConversionWarning]]:
    """Render Blocks in order. Returns (paragraphs, warnings)."""
    warnings: list[ConversionWarning] = []
    paragraphs = []
    for block in blocks:
        p = render_block(block, warnings, code_font)
        if p is not None:
            paragraphs.append(p)
    return paragraphs, warnings


def _prune_ignorable(root: ET.Element, prefixes: dict[str, str]) -> None:
    """Drop mc:Ignorable prefixes whose declarations ElementTree will not emit."""
    key = "{http://schemas.openxmlformats.org/markup-compatibility/2006}Ignorable"
    ignorable = root.get(key)
    if ignorable is None:
        return
    used = set()
    for elem in root.iter():
        for name in (elem.tag, *elem.attrib):
            if name.startswith("{"):
                used.add(name[1:].split("}", 1)[0])
    kept = [p for p in ignorable.split() if prefixes.get(p) in used]
    root.set(key, " ".join(kept))


def _register_prefixes(prefixes: dict[str, str]) -> None:
    """Keep the document's own prefixes when ElementTree re-serializes it."""
    for prefix, uri in prefixes.items():
        if not prefix or RESERVED_PREFIX_RE.match(prefix):
            continue
        if prefix in ooxml.NAMESPACES or uri in ooxml.NAMESPACES.values():
            continue
        try:
            ET.register_namespace(prefix, uri)
        except ValueError as e:
            logger.debug("Not registering prefix %r: %s", prefix, e)


def replace_body(document_xml: bytes, paragraphs: list[ET.Element]) -> bytes:
    """Swap every body child except w:sectPr for ``paragraphs``."""
    try:
        prefixes = {p: uri for _, (p, uri) in ET.iterparse(io.BytesIO(document_xml), events=("start-ns",))}
        root = ET.fromstring(document_xml)
    except ET.ParseError as e:
        raise ContainerError(f"Main document part is not valid XML: {e}") from e
    _register_prefixes(prefixes)

    body = root.find(qn("w:body"))
    if body is None:
        raise ContainerError("Main document part has no w:body element")

    sect_pr = body.find(qn("w:sectPr"))
    for child in list(body):
        if child is not sect_pr:
            body.remove(child)
    for index, p in enumerate(paragraphs):
        body.insert(index, p)

    _prune_ignorable(root, prefixes)
    try:
        return ooxml.to_bytes(root)
    except ValueError as e:
        raise ContainerError(f"Cannot serialize main document part: {e}") from e


def render_document(
    container: Path,
    markdown: str,
    preset: str = "commonmark",
    code_font: str = "Courier New",
    ) -> tuple[bytes, list[ConversionWarning]]:
    """Return the container's main document part re-rendered from ``markdown``, plus warnings.

    Nothing is written. Raises ContainerError when the container cannot be
    opened or has no usable main document part.
    """
    document_xml = store.read_part(container, ooxml.MAIN_DOCUMENT_PART)
    if document_xml is None:
        raise ContainerError(f"{container} has no {ooxml.MAIN_DOCUMENT_PART} part")

    paragraphs, warnings = render_blocks(parse_markdown(markdown, preset), code_font)
    logger.info("Rendered %d paragraph(s) for %s (%d warning(s))", len(paragraphs), container, len(warnings))
    return replace_body(document_xml, paragraphs), warnings


def convert(container: Path, markdown: str, preset: str = "commonmark", code_font: str = "Courier New") -> list[ConversionWarning]:
    """Replace the container's native body with a rendering of ``markdown``. Returns the warnings."""
    document_xml, warnings = render_document(container, markdown, preset, code_font)
    store.rewrite_package(container, updates={ooxml.MAIN_DOCUMENT_PART: document_xml})
    return warnings
