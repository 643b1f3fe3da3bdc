from __future__ import annotations

import posixpath
from dataclasses import dataclass, field
from xml.sax.saxutils import escape

from lxml import etree

from . import config
from .config import MergeConfig
from .exceptions import MergeError, MissingSectionProperties
from .merge_log import MergeLog
from .package import (
    DOCUMENT_PART,
    FOOTER_CONTENT_TYPE,
    FOOTER_PARTS,
    HEADER_CONTENT_TYPE,
    HEADER_PARTS,
    RT_FOOTER,
    RT_HEADER,
    STYLES_PART,
    ContentTypes,
    DocxPackage,
    Relationships,
    rels_part_name,
    relative_target,
)
from .styles import StyleMergeReport, reconcile_styles
from .xml_utils import NS, clone, find_body, iter_text, parse_xml, qn

HEADER = "header"
FOOTER = "footer"

_REFERENCE_TAGS = {HEADER: qn("w:headerReference"), FOOTER: qn("w:footerReference")}
_CONTENT_TYPES = {HEADER: HEADER_CONTENT_TYPE, FOOTER: FOOTER_CONTENT_TYPE}
_RELATIONSHIP_TYPES = {RT_HEADER: HEADER, RT_FOOTER: FOOTER}
_ATTRIBUTE_ENTITIES = {'"': "&quot;"}
# CT_SectPr children that must follow w:titlePg.
_AFTER_TITLE_PAGE = frozenset(
    qn(f"w:{name}")
    for name in ("textDirection", "bidi", "rtlGutter", "docGrid", "printerSettings", "sectPrChange")
)


@dataclass
class HeaderFooterReport:
    replaced_parts: list[str] = field(default_factory=list)
    titled_parts: list[str] = field(default_factory=list)
    copied_resources: list[str] = field(default_factory=list)
    references_rewired: int = 0
    sections_updated: int = 0
    style_report: StyleMergeReport | None = None


@dataclass(frozen=True)
class HeaderFooterPreview:
    kind: str
    part_name: str
    text: str
    has_placeholder: bool


def header_footer_slots() -> list[tuple[str, str]]:
    slots = [(HEADER, name) for name in HEADER_PARTS]
    slots.extend((FOOTER, name) for name in FOOTER_PARTS)
    return slots


def preview_template_parts(template: DocxPackage) -> list[HeaderFooterPreview]:
    previews: list[HeaderFooterPreview] = []
    for kind, part_name in header_footer_slots():
        content = template.get_text(part_name)
        if content is None:
            continue
        try:
            text = " ".join(iter_text(parse_xml(content, part_name))).strip()
            text = text or "No visible text content"
        except MergeError:
            text = "Preview not available"
        previews.append(
            HeaderFooterPreview(
                kind=kind,
                part_name=part_name,
                text=text,
                has_placeholder=config.PLACEHOLDER_TOKEN in content,
            )
        )
    return previews


def replace_headers_and_footers(
    target: DocxPackage,
    template: DocxPackage,
    title: str | None,
    merge_config: MergeConfig,
    log: MergeLog | None = None,
    source: str | None = None,
) -> HeaderFooterReport:
    report = HeaderFooterReport()
    if log is not None:
        log.info("Replacing headers/footers from template...", source)
    target_types = ContentTypes.from_package(target)
    template_types = ContentTypes.from_package(template)
    installed: dict[str, str] = {}
    for kind, part_name in header_footer_slots():
        content = template.get_text(part_name)
        if content is None:
            continue
        if merge_config.extract_title and title and config.PLACEHOLDER_TOKEN in content:
            content = content.replace(
                config.PLACEHOLDER_TOKEN, escape(title, _ATTRIBUTE_ENTITIES)
            )
            report.titled_parts.append(part_name)
            if log is not None:
                log.success(f"Title inserted in {part_name}: \"{title}\"", source)
        _install_part(
            target, template, part_name, content.encode("utf-8"), kind,
            target_types, template_types, report, log, source,
        )
        installed[part_name] = kind
        if log is not None:
            log.info(f"Replaced {kind}: {part_name}", source)

    try:
        rewire_section_references(
            target, template, installed, target_types, template_types, report, log, source,
        )
    except MissingSectionProperties as exc:
        if log is not None:
            log.warning(f"{exc}; headers/footers left unreferenced", source)
    # Runs after rewiring so parts installed outside the fixed slots are scanned too.
    report.style_report = _merge_header_styles(
        target, template, list(dict.fromkeys(report.replaced_parts)), log, source,
    )
    target_types.save(target)
    if log is not None:
        log.success(
            f"Successfully replaced {len(report.replaced_parts)} header/footer files", source
        )
    return report


def rewire_section_references(
    target: DocxPackage,
    template: DocxPackage,
    installed: dict[str, str],
    target_types: ContentTypes,
    template_types: ContentTypes,
    report: HeaderFooterReport,
    log: MergeLog | None = None,
    source: str | None = None,
) -> int:
    template_root = template.require_xml(DOCUMENT_PART)
    target_root = target.require_xml(DOCUMENT_PART)
    template_sect_pr = final_section_properties(template_root)
    target_sections = section_properties(target_root)
    if template_sect_pr is None or not target_sections:
        raise MissingSectionProperties(
            "Could not find section properties in template or target document"
        )

    template_rels = Relationships.from_package(template, DOCUMENT_PART)
    target_rels = Relationships.from_package(target, DOCUMENT_PART)
    references: list[etree._Element] = []
    for kind in (HEADER, FOOTER):
        for reference in template_sect_pr.findall(f"w:{kind}Reference", namespaces=NS):
            remapped = _remap_reference(
                reference, kind, target, template, installed, template_rels, target_rels,
                target_types, template_types, report, log, source,
            )
            if remapped is not None:
                references.append(remapped)

    first_page = template_sect_pr.find("w:titlePg", namespaces=NS)
    for sect_pr in target_sections:
        for tag in _REFERENCE_TAGS.values():
            for old in sect_pr.findall(tag):
                sect_pr.remove(old)
        for index, reference in enumerate(references):
            sect_pr.insert(index, clone(reference))
        for old in sect_pr.findall("w:titlePg", namespaces=NS):
            sect_pr.remove(old)
        if first_page is not None:
            _insert_title_page(sect_pr, clone(first_page))

    target.set_xml(DOCUMENT_PART, target_root)
    target_rels.save(target)
    report.references_rewired = len(references)
    report.sections_updated = len(target_sections)
    if log is not None:
        log.success(
            f"Updated {len(target_sections)} section properties with "
            f"{len(references)} template header/footer references",
            source,
        )
    return len(references)


def final_section_properties(document_root: etree._Element) -> etree._Element | None:
    body = find_body(document_root)
    if body is None:
        return None
    sect_pr = body.find("w:sectPr", namespaces=NS)
    if sect_pr is not None:
        return sect_pr
    sections = section_properties(document_root)
    return sections[-1] if sections else None


def section_properties(document_root: etree._Element) -> list[etree._Element]:
    body = find_body(document_root)
    if body is None:
        return []
    sections = [
        sect_pr
        for sect_pr in body.iterfind(".//w:p/w:pPr/w:sectPr", namespaces=NS)
    ]
    sections.extend(body.findall("w:sectPr", namespaces=NS))
    return sections


def _remap_reference(
    reference: etree._Element,
    kind: str,
    target: DocxPackage,
    template: DocxPackage,
    installed: dict[str, str],
    template_rels: Relationships,
    target_rels: Relationships,
    target_types: ContentTypes,
    template_types: ContentTypes,
    report: HeaderFooterReport,
    log: MergeLog | None,
    source: str | None,
) -> etree._Element | None:
    rid = reference.get(qn("r:id"))
    rel = template_rels.get(rid) if rid else None
    part_name = template_rels.target_part(rel) if rel is not None else None
    if rel is None or part_name is None:
        if log is not None:
            log.warning(
                f"Template {kind} reference {rid!r} has no relationship; skipped", source
            )
        return None
    if part_name not in installed:
        data = template.get_part(part_name)
        if data is None:
            if log is not None:
                log.warning(
                    f"Template {kind} part {part_name} is missing; reference skipped", source
                )
            return None
        _install_part(
            target, template, part_name, data, kind,
            target_types, template_types, report, log, source,
        )
        installed[part_name] = kind
        if log is not None:
            log.info(f"Copied referenced {kind} outside fixed slots: {part_name}", source)
    rel_type = rel.rel_type
    if rel_type not in _RELATIONSHIP_TYPES:
        rel_type = RT_HEADER if kind == HEADER else RT_FOOTER
    new_rid = target_rels.find(rel_type, part_name) or target_rels.add_part(rel_type, part_name)
    remapped = clone(reference)
    remapped.tail = None
    remapped.set(qn("r:id"), new_rid)
    if log is not None:
        log.debug(f"Mapped template {kind} reference {rid} -> {new_rid} ({part_name})", source)
    return remapped


def _install_part(
    target: DocxPackage,
    template: DocxPackage,
    part_name: str,
    data: bytes,
    kind: str,
    target_types: ContentTypes,
    template_types: ContentTypes,
    report: HeaderFooterReport,
    log: MergeLog | None,
    source: str | None,
) -> None:
    target.set_part(part_name, data)
    target_types.ensure_override(part_name, _CONTENT_TYPES[kind])
    _copy_part_relationships(
        target, template, part_name, target_types, template_types, report, log, source,
    )
    report.replaced_parts.append(part_name)


def _copy_part_relationships(
    target: DocxPackage,
    template: DocxPackage,
    part_name: str,
    target_types: ContentTypes,
    template_types: ContentTypes,
    report: HeaderFooterReport,
    log: MergeLog | None,
    source: str | None,
) -> None:
    rels_name = rels_part_name(part_name)
    if not template.has_part(rels_name):
        if target.remove_part(rels_name) and log is not None:
            log.debug(f"Removed stale relationships for {part_name}", source)
        return
    rels = Relationships.from_package(template, part_name)
    for rel in list(rels):
        resource = rels.target_part(rel)
        if resource is None:
            continue
        data = template.get_part(resource)
        if data is None:
            if log is not None:
                log.warning(f"{part_name} references missing template part {resource}", source)
            continue
        destination = _free_part_name(target, resource, data)
        if destination != resource:
            rels.retarget(rel.rid, relative_target(part_name, destination))
        target.set_part(destination, data)
        override = template_types.override_for(resource)
        if override is not None:
            target_types.ensure_override(destination, override)
        else:
            extension = posixpath.splitext(destination)[1]
            target_types.ensure_default(extension, template_types.default_for(extension))
        report.copied_resources.append(destination)
        if log is not None:
            log.debug(f"Copied {resource} -> {destination} for {part_name}", source)
    rels.save(target)


def _free_part_name(target: DocxPackage, part_name: str, data: bytes) -> str:
    existing = target.get_part(part_name)
    if existing is None or existing == data:
        return part_name
    stem, extension = posixpath.splitext(part_name)
    counter = 1
    while True:
        candidate = f"{stem}_tpl{counter}{extension}"
        existing = target.get_part(candidate)
        if existing is None or existing == data:
            return candidate
        counter += 1


def _merge_header_styles(
    target: DocxPackage,
    template: DocxPackage,
    part_names: list[str],
    log: MergeLog | None,
    source: str | None,
) -> StyleMergeReport | None:
    if not part_names:
        return None
    if log is not None:
        log.info("Merging styles.xml for exact header/footer formatting...", source)
    try:
        template_styles = template.get_xml(STYLES_PART)
        target_styles = target.get_xml(STYLES_PART)
        if template_styles is None or target_styles is None:
            if log is not None:
                log.warning(
                    "Could not find styles.xml in both template and target. Skipping merge.",
                    source,
                )
            return None
        documents = []
        for part_name in part_names:
            root = target.get_xml(part_name)
            if root is not None:
                documents.append(root)
        report = reconcile_styles(template_styles, target_styles, documents, log, source)
    except MergeError as exc:
        if log is not None:
            log.warning(f"Error during style merge: {exc}", source)
        return None
    target.set_xml(STYLES_PART, target_styles)
    return report


def _insert_title_page(sect_pr: etree._Element, title_page: etree._Element) -> None:
    title_page.tail = None
    for child in sect_pr:
        if child.tag in _AFTER_TITLE_PAGE:
            child.addprevious(title_page)
            return
    sect_pr.append(title_page)
