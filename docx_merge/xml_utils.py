from __future__ import annotations

from copy import deepcopy
from typing import Iterable

from lxml import etree

from .exceptions import MalformedXml

W_NS = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"
R_NS = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"
REL_NS = "http://schemas.openxmlformats.org/package/2006/relationships"
CT_NS = "http://schemas.openxmlformats.org/package/2006/content-types"
CP_NS = "http://schemas.openxmlformats.org/package/2006/metadata/core-properties"
DC_NS = "http://purl.org/dc/elements/1.1/"
XML_NS = "http://www.w3.org/XML/1998/namespace"

NS = {
    "w": W_NS,
    "r": R_NS,
    "rel": REL_NS,
    "ct": CT_NS,
    "cp": CP_NS,
    "dc": DC_NS,
}

_PARSER = etree.XMLParser(resolve_entities=False, no_network=True, huge_tree=True)


def qn(tag: str) -> str:
    prefix, _, local = tag.partition(":")
    if not local:
        return tag
    return f"{{{NS[prefix]}}}{local}"


def parse_xml(data: bytes | str, part_name: str | None = None) -> etree._Element:
    if isinstance(data, str):
        data = data.encode("utf-8")
    try:
        return etree.fromstring(data, parser=_PARSER)
    except (etree.XMLSyntaxError, ValueError) as exc:
        raise MalformedXml(part_name, str(exc)) from exc


def serialize_xml(root: etree._Element) -> bytes:
    return etree.tostring(
        root,
        xml_declaration=True,
        encoding="UTF-8",
        standalone=True,
    )


def canonical(element: etree._Element) -> bytes:
    return etree.tostring(element, method="c14n", exclusive=True, with_comments=False)


def clone(element: etree._Element) -> etree._Element:
    return deepcopy(element)


def get_attr(element: etree._Element | None, name: str) -> str | None:
    if element is None:
        return None
    return element.get(qn(name) if ":" in name else qn(f"w:{name}"))


def iter_text(element: etree._Element) -> Iterable[str]:
    for node in element.iter(qn("w:t")):
        if node.text:
            yield node.text


def paragraph_text(paragraph: etree._Element, separator: str = "") -> str:
    return separator.join(iter_text(paragraph)).strip()


def find_body(document_root: etree._Element) -> etree._Element | None:
    return document_root.find("w:body", namespaces=NS)
