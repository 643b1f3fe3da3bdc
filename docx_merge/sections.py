from __future__ import annotations

from lxml import etree

from .merge_log import MergeLog
from .xml_utils import NS, XML_NS, clone, find_body, paragraph_text, qn

PROCEDURE_MARKER = "PROCEDURE"
FLOW_CHART_HEADING = "PROCESS FLOW CHART"
PLACEHOLDER_TEXT = "NA"


def find_procedure_paragraph(
    body: etree._Element,
) -> tuple[etree._Element | None, etree._Element | None]:
    paragraphs = list(body.iter(qn("w:p")))
    for index, paragraph in enumerate(paragraphs):
        if paragraph.find("w:pPr/w:numPr", namespaces=NS) is None:
            continue
        if PROCEDURE_MARKER not in paragraph_text(paragraph).upper():
            continue
        following = paragraphs[index + 1] if index + 1 < len(paragraphs) else None
        return paragraph, following
    return None, None


def insert_flow_chart_section(
    document_root: etree._Element,
    log: MergeLog | None = None,
    source: str | None = None,
) -> bool:
    body = find_body(document_root)
    target, following = (None, None) if body is None else find_procedure_paragraph(body)
    if target is None:
        if log is not None:
            log.warning(
                'Could not find a numbered heading containing "PROCEDURE". '
                "Skipping section insertion.",
                source,
            )
        return False
    if log is not None:
        log.debug('Found "PROCEDURE" heading. Cloning and inserting new section.', source)
    heading = _build_heading(target)
    placeholder = _build_placeholder(following)
    blank = etree.Element(qn("w:p"))
    for paragraph in (heading, placeholder, blank):
        target.addprevious(paragraph)
    if log is not None:
        log.success(
            'Inserted "PROCESS FLOW CHART" section with content and spacing.',
            source,
        )
    return True


def _build_heading(target: etree._Element) -> etree._Element:
    heading = clone(target)
    heading.tail = None
    for tag in ("w:r", "w:bookmarkStart", "w:bookmarkEnd"):
        for node in list(heading.iter(qn(tag))):
            node.getparent().remove(node)
    run = etree.SubElement(heading, qn("w:r"))
    r_pr = etree.SubElement(run, qn("w:rPr"))
    etree.SubElement(r_pr, qn("w:b"))
    text = etree.SubElement(run, qn("w:t"))
    text.set(f"{{{XML_NS}}}space", "preserve")
    text.text = FLOW_CHART_HEADING
    return heading


def _build_placeholder(following: etree._Element | None) -> etree._Element:
    paragraph = etree.Element(qn("w:p"))
    if following is not None:
        p_pr = following.find("w:pPr", namespaces=NS)
        if p_pr is not None:
            cloned = clone(p_pr)
            cloned.tail = None
            for tag in ("w:numPr", "w:sectPr"):
                node = cloned.find(tag, namespaces=NS)
                if node is not None:
                    cloned.remove(node)
            paragraph.append(cloned)
    run = etree.SubElement(paragraph, qn("w:r"))
    text = etree.SubElement(run, qn("w:t"))
    text.text = PLACEHOLDER_TEXT
    return paragraph
