from __future__ import annotations

from dataclasses import dataclass

from lxml import etree

from . import config
from .config import MergeConfig
from .exceptions import MergeError, MissingStylesRoot
from .merge_log import MergeLog
from .package import DOCUMENT_PART, FONT_TABLE_PART, STYLES_PART, DocxPackage
from .styles import style_map
from .xml_utils import NS, get_attr, qn

_FACE_ATTRS = ("ascii", "hAnsi", "cs")
_THEME_ATTRS = ("asciiTheme", "hAnsiTheme", "cstheme")
_INLINE_THEME_ATTRS = ("asciiTheme", "hAnsiTheme")
# CT_Style children that must follow w:rPr.
_AFTER_STYLE_RPR = frozenset(qn(f"w:{name}") for name in ("tblPr", "trPr", "tcPr", "tblStylePr"))


@dataclass
class FontReport:
    font: str | None
    styles_updated: int = 0
    inline_updated: int = 0
    font_table_copied: bool = False


def resolve_target_font(
    merge_config: MergeConfig,
    template: DocxPackage,
    log: MergeLog | None = None,
    source: str | None = None,
) -> str | None:
    if merge_config.font_override:
        return merge_config.font_override
    if merge_config.preserve_target_fonts:
        return None
    try:
        styles_root = template.get_xml(STYLES_PART)
    except MergeError as exc:
        if log is not None:
            log.warning(
                f"Could not read template styles ({exc}), "
                f"using {config.DEFAULT_FONT_NAME} as fallback",
                source,
            )
        return config.DEFAULT_FONT_NAME
    if styles_root is None:
        if log is not None:
            log.warning(
                f"Template has no styles part, using {config.DEFAULT_FONT_NAME} as fallback",
                source,
            )
        return config.DEFAULT_FONT_NAME
    font = template_default_font(styles_root)
    if font is None:
        if log is not None:
            log.warning(
                f"Could not extract template font, using {config.DEFAULT_FONT_NAME} as fallback",
                source,
            )
        return config.DEFAULT_FONT_NAME
    if log is not None:
        log.info(f"Found template font: {font}", source)
    return font


def template_default_font(styles_root: etree._Element) -> str | None:
    normal = style_map(styles_root).get("Normal")
    candidates = (
        styles_root.find("w:docDefaults/w:rPrDefault/w:rPr/w:rFonts", namespaces=NS),
        normal.find("w:rPr/w:rFonts", namespaces=NS) if normal is not None else None,
    )
    for r_fonts in candidates:
        font = get_attr(r_fonts, "ascii") or get_attr(r_fonts, "hAnsi")
        if font:
            return font
    return None


def force_styles_font(styles_root: etree._Element, font: str) -> int:
    if styles_root.tag != qn("w:styles"):
        raise MissingStylesRoot("missing <w:styles> root in target styles part")
    updated = 0
    _set_run_font(_ensure_default_run_properties(styles_root), font)
    updated += 1
    for style in styles_root.findall("w:style", namespaces=NS):
        r_pr = style.find("w:rPr", namespaces=NS)
        if r_pr is None:
            r_pr = etree.Element(qn("w:rPr"))
            _insert_style_rpr(style, r_pr)
        _set_run_font(r_pr, font)
        updated += 1
    return updated


def correct_inline_fonts(document_root: etree._Element, font: str) -> int:
    updated = 0
    for r_fonts in document_root.iter(qn("w:rFonts")):
        r_fonts.set(qn("w:ascii"), font)
        r_fonts.set(qn("w:hAnsi"), font)
        if r_fonts.get(qn("w:cs")) is not None:
            r_fonts.set(qn("w:cs"), font)
        for name in _INLINE_THEME_ATTRS:
            r_fonts.attrib.pop(qn(f"w:{name}"), None)
        updated += 1
    return updated


def normalize_fonts(
    target: DocxPackage,
    template: DocxPackage,
    font: str,
    log: MergeLog | None = None,
    source: str | None = None,
) -> FontReport:
    report = FontReport(font=font)
    if log is not None:
        log.info(f"Applying font: {font}", source)
    styles_root = target.get_xml(STYLES_PART)
    if styles_root is None:
        if log is not None:
            log.warning("Target document is missing styles.xml, cannot apply font.", source)
    else:
        report.styles_updated = force_styles_font(styles_root, font)
        target.set_xml(STYLES_PART, styles_root)
        if log is not None:
            log.debug(f"Forced {report.styles_updated} style run properties to use {font}", source)
    font_table = template.get_part(FONT_TABLE_PART)
    if font_table is not None:
        target.set_part(FONT_TABLE_PART, font_table)
        report.font_table_copied = True
        if log is not None:
            log.info("Applied template font table", source)
    document_root = target.require_xml(DOCUMENT_PART)
    report.inline_updated = correct_inline_fonts(document_root, font)
    target.set_xml(DOCUMENT_PART, document_root)
    if log is not None:
        log.info(f"Corrected {report.inline_updated} inline font references", source)
    return report


def _ensure_default_run_properties(styles_root: etree._Element) -> etree._Element:
    doc_defaults = styles_root.find("w:docDefaults", namespaces=NS)
    if doc_defaults is None:
        doc_defaults = etree.Element(qn("w:docDefaults"))
        styles_root.insert(0, doc_defaults)
    r_pr_default = doc_defaults.find("w:rPrDefault", namespaces=NS)
    if r_pr_default is None:
        r_pr_default = etree.Element(qn("w:rPrDefault"))
        doc_defaults.insert(0, r_pr_default)
    r_pr = r_pr_default.find("w:rPr", namespaces=NS)
    if r_pr is None:
        r_pr = etree.SubElement(r_pr_default, qn("w:rPr"))
    return r_pr


def _insert_style_rpr(style: etree._Element, r_pr: etree._Element) -> None:
    for child in style:
        if child.tag in _AFTER_STYLE_RPR:
            child.addprevious(r_pr)
            return
    style.append(r_pr)


def _set_run_font(r_pr: etree._Element, font: str) -> None:
    r_fonts = r_pr.find("w:rFonts", namespaces=NS)
    if r_fonts is None:
        r_fonts = etree.Element(qn("w:rFonts"))
        r_style = r_pr.find("w:rStyle", namespaces=NS)
        if r_style is not None:
            r_style.addnext(r_fonts)
        else:
            r_pr.insert(0, r_fonts)
    for name in _FACE_ATTRS:
        r_fonts.set(qn(f"w:{name}"), font)
    for name in _THEME_ATTRS:
        r_fonts.attrib.pop(qn(f"w:{name}"), None)
