from __future__ import annotations

import io
import mimetypes
import posixpath
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator
from zipfile import BadZipFile, LargeZipFile, ZIP_DEFLATED, ZipFile

from lxml import etree

from .exceptions import CorruptArchive, MissingRequiredPart
from .xml_utils import CT_NS, NS, REL_NS, R_NS, parse_xml, serialize_xml

DOCUMENT_PART = "word/document.xml"
HEADER_PARTS = ("word/header1.xml", "word/header2.xml", "word/header3.xml")
FOOTER_PARTS = ("word/footer1.xml", "word/footer2.xml", "word/footer3.xml")
STYLES_PART = "word/styles.xml"
FONT_TABLE_PART = "word/fontTable.xml"
DOCUMENT_RELS_PART = "word/_rels/document.xml.rels"
CONTENT_TYPES_PART = "[Content_Types].xml"
CORE_PROPS_PART = "docProps/core.xml"

RT_HEADER = f"{R_NS}/header"
RT_FOOTER = f"{R_NS}/footer"
HEADER_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.header+xml"
FOOTER_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.footer+xml"

_RID_PATTERN = re.compile(r"^rId(\d+)$")


@dataclass
class DocxPackage:
    parts: dict[str, bytes]

    @classmethod
    def open(cls, data: bytes) -> "DocxPackage":
        if not data:
            raise CorruptArchive("file appears to be corrupted or not a valid Word document (empty)")
        try:
            with ZipFile(io.BytesIO(data)) as archive:
                parts = {
                    info.filename: archive.read(info.filename)
                    for info in archive.infolist()
                    if not info.is_dir()
                }
        except (BadZipFile, LargeZipFile, EOFError, OSError) as exc:
            raise CorruptArchive(
                f"file appears to be corrupted or not a valid Word document ({exc})"
            ) from exc
        package = cls(parts=parts)
        package.require_part(CONTENT_TYPES_PART)
        package.require_part(DOCUMENT_PART)
        return package

    @classmethod
    def load(cls, path: str | Path) -> "DocxPackage":
        return cls.open(Path(path).read_bytes())

    def part_names(self) -> list[str]:
        return list(self.parts)

    def has_part(self, name: str) -> bool:
        return name in self.parts

    def get_part(self, name: str) -> bytes | None:
        return self.parts.get(name)

    def get_text(self, name: str) -> str | None:
        data = self.parts.get(name)
        if data is None:
            return None
        return data.decode("utf-8-sig")

    def require_part(self, name: str) -> bytes:
        data = self.parts.get(name)
        if data is None:
            raise MissingRequiredPart(name)
        return data

    def set_part(self, name: str, data: bytes | str) -> None:
        if isinstance(data, str):
            data = data.encode("utf-8")
        self.parts[name] = data

    def remove_part(self, name: str) -> bool:
        return self.parts.pop(name, None) is not None

    def get_xml(self, name: str) -> etree._Element | None:
        data = self.parts.get(name)
        if data is None:
            return None
        return parse_xml(data, name)

    def require_xml(self, name: str) -> etree._Element:
        return parse_xml(self.require_part(name), name)

    def set_xml(self, name: str, root: etree._Element) -> None:
        self.parts[name] = serialize_xml(root)

    def to_bytes(self) -> bytes:
        buffer = io.BytesIO()
        ordered = sorted(self.parts, key=lambda name: name != CONTENT_TYPES_PART)
        with ZipFile(buffer, "w", ZIP_DEFLATED) as archive:
            for name in ordered:
                archive.writestr(name, self.parts[name])
        return buffer.getvalue()

    def save(self, path: str | Path) -> Path:
        output = Path(path)
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(self.to_bytes())
        return output


def rels_part_name(part_name: str) -> str:
    directory, filename = posixpath.split(part_name)
    return posixpath.join(directory, "_rels", f"{filename}.rels")


def resolve_target(source_part: str, target: str) -> str:
    if target.startswith("/"):
        return posixpath.normpath(target).lstrip("/")
    base = posixpath.dirname(source_part)
    return posixpath.normpath(posixpath.join("/", base, target)).lstrip("/")


def relative_target(source_part: str, part_name: str) -> str:
    base = posixpath.dirname(source_part)
    return posixpath.relpath(f"/{part_name}", f"/{base}" if base else "/")


@dataclass(frozen=True)
class Relationship:
    rid: str
    rel_type: str
    target: str
    external: bool = False


class Relationships:
    def __init__(self, source_part: str, root: etree._Element) -> None:
        self.source_part = source_part
        self.root = root

    @classmethod
    def from_package(cls, package: DocxPackage, source_part: str) -> "Relationships":
        root = package.get_xml(rels_part_name(source_part))
        if root is None:
            root = etree.Element(f"{{{REL_NS}}}Relationships", nsmap={None: REL_NS})
        return cls(source_part, root)

    def __iter__(self) -> Iterator[Relationship]:
        for node in self.root.findall("rel:Relationship", namespaces=NS):
            rid = node.get("Id")
            if not rid:
                continue
            yield Relationship(
                rid=rid,
                rel_type=node.get("Type", ""),
                target=node.get("Target", ""),
                external=node.get("TargetMode") == "External",
            )

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def get(self, rid: str) -> Relationship | None:
        for rel in self:
            if rel.rid == rid:
                return rel
        return None

    def target_part(self, rel: Relationship) -> str | None:
        if rel.external:
            return None
        return resolve_target(self.source_part, rel.target)

    def find(self, rel_type: str, part_name: str) -> str | None:
        for rel in self:
            if rel.rel_type == rel_type and self.target_part(rel) == part_name:
                return rel.rid
        return None

    def next_rid(self) -> str:
        used = [0]
        for rel in self:
            match = _RID_PATTERN.match(rel.rid)
            if match:
                used.append(int(match.group(1)))
        return f"rId{max(used) + 1}"

    def add(self, rel_type: str, target: str, external: bool = False) -> str:
        rid = self.next_rid()
        node = etree.SubElement(self.root, f"{{{REL_NS}}}Relationship")
        node.set("Id", rid)
        node.set("Type", rel_type)
        node.set("Target", target)
        if external:
            node.set("TargetMode", "External")
        return rid

    def add_part(self, rel_type: str, part_name: str) -> str:
        return self.add(rel_type, relative_target(self.source_part, part_name))

    def retarget(self, rid: str, target: str) -> None:
        for node in self.root.findall("rel:Relationship", namespaces=NS):
            if node.get("Id") == rid:
                node.set("Target", target)
                return
        raise KeyError(f"unknown relationship id: {rid}")

    def save(self, package: DocxPackage) -> None:
        package.set_xml(rels_part_name(self.source_part), self.root)


class ContentTypes:
    def __init__(self, root: etree._Element) -> None:
        self.root = root

    @classmethod
    def from_package(cls, package: DocxPackage) -> "ContentTypes":
        return cls(package.require_xml(CONTENT_TYPES_PART))

    def override_for(self, part_name: str) -> str | None:
        key = f"/{part_name}"
        for node in self.root.findall("ct:Override", namespaces=NS):
            if node.get("PartName", "").lower() == key.lower():
                return node.get("ContentType")
        return None

    def default_for(self, extension: str) -> str | None:
        ext = extension.lstrip(".").lower()
        for node in self.root.findall("ct:Default", namespaces=NS):
            if node.get("Extension", "").lower() == ext:
                return node.get("ContentType")
        return None

    def content_type_for(self, part_name: str) -> str | None:
        override = self.override_for(part_name)
        if override is not None:
            return override
        return self.default_for(posixpath.splitext(part_name)[1])

    def ensure_override(self, part_name: str, content_type: str) -> bool:
        if self.override_for(part_name) == content_type:
            return False
        key = f"/{part_name}"
        for node in self.root.findall("ct:Override", namespaces=NS):
            if node.get("PartName", "").lower() == key.lower():
                node.set("ContentType", content_type)
                return True
        node = etree.SubElement(self.root, f"{{{CT_NS}}}Override")
        node.set("PartName", key)
        node.set("ContentType", content_type)
        return True

    def ensure_default(self, extension: str, content_type: str | None = None) -> bool:
        ext = extension.lstrip(".").lower()
        if not ext or self.default_for(ext) is not None:
            return False
        if content_type is None:
            content_type = mimetypes.guess_type(f"file.{ext}")[0] or "application/octet-stream"
        node = etree.Element(f"{{{CT_NS}}}Default")
        node.set("Extension", ext)
        node.set("ContentType", content_type)
        defaults = self.root.findall("ct:Default", namespaces=NS)
        if defaults:
            defaults[-1].addnext(node)
        else:
            self.root.insert(0, node)
        return True

    def save(self, package: DocxPackage) -> None:
        package.set_xml(CONTENT_TYPES_PART, self.root)
