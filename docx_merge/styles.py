from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from lxml import etree

from .exceptions import MissingStylesRoot
from .merge_log import MergeLog
from .xml_utils import NS, canonical, clone, get_attr, qn

STYLE_REFERENCE_TAGS = (qn("w:pStyle"), qn("w:rStyle"), qn("w:tblStyle"))


@dataclass
class StyleMergeReport:
    referenced: list[str] = field(default_factory=list)
    added: list[str] = field(default_factory=list)
    replaced: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    dependencies: list[str] = field(default_factory=list)

    @property
    def changed(self) -> int:
        return len(self.added) + len(self.replaced) + len(self.dependencies)


def collect_style_references(documents: Iterable[etree._Element]) -> list[str]:
    seen: dict[str, None] = {}
    for root in documents:
        for node in root.iter(*STYLE_REFERENCE_TAGS):
            style_id = get_attr(node, "val")
            if style_id:
                seen.setdefault(style_id, None)
    return list(seen)


def style_map(styles_root: etree._Element) -> dict[str, etree._Element]:
    mapping: dict[str, etree._Element] = {}
    for style in styles_root.findall("w:style", namespaces=NS):
        style_id = get_attr(style, "styleId")
        if style_id and style_id not in mapping:
            mapping[style_id] = style
    return mapping


def reconcile_styles(
    template_styles: etree._Element,
    target_styles: etree._Element,
    header_documents: Iterable[etree._Element],
    log: MergeLog | None = None,
    source: str | None = None,
) -> StyleMergeReport:
    _require_styles_root(template_styles, "template")
    _require_styles_root(target_styles, "target")
    report = StyleMergeReport(referenced=collect_style_references(header_documents))
    template_map = style_map(template_styles)
    target_map = style_map(target_styles)
    for style_id in report.referenced:
        template_style = template_map.get(style_id)
        target_style = target_map.get(style_id)
        if template_style is None:
            report.missing.append(style_id)
            continue
        if target_style is None:
            imported = clone(template_style)
            target_styles.append(imported)
            target_map[style_id] = imported
            report.added.append(style_id)
            _import_missing_ancestors(template_style, template_map, target_styles, target_map, report)
        elif canonical(target_style) != canonical(template_style):
            replacement = clone(template_style)
            target_styles.replace(target_style, replacement)
            target_map[style_id] = replacement
            report.replaced.append(style_id)
        else:
            report.unchanged.append(style_id)
    if log is not None:
        log.debug(
            f"Ensured {report.changed} header/footer styles from template are present "
            f"(added={len(report.added)}, replaced={len(report.replaced)}, "
            f"ancestors={len(report.dependencies)})",
            source,
        )
        if report.missing:
            log.warning(
                "Header/footer styles missing from template: " + ", ".join(report.missing),
                source,
            )
    return report


def _import_missing_ancestors(
    style: etree._Element,
    template_map: dict[str, etree._Element],
    target_styles: etree._Element,
    target_map: dict[str, etree._Element],
    report: StyleMergeReport,
) -> None:
    visited: set[str] = set()
    current = style
    while True:
        based_on = get_attr(current.find("w:basedOn", namespaces=NS), "val")
        if not based_on or based_on in visited:
            return
        visited.add(based_on)
        if based_on in target_map:
            return
        parent = template_map.get(based_on)
        if parent is None:
            return
        imported = clone(parent)
        target_styles.append(imported)
        target_map[based_on] = imported
        report.dependencies.append(based_on)
        current = parent


def _require_styles_root(root: etree._Element | None, label: str) -> None:
    if root is None or root.tag != qn("w:styles"):
        raise MissingStylesRoot(f"missing <w:styles> root in {label} styles part")
