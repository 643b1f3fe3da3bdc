from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePath
from typing import Callable

from . import config
from .exceptions import MergeError
from .merge_log import MergeLog
from .package import CORE_PROPS_PART, DOCUMENT_PART, HEADER_PARTS, DocxPackage
from .xml_utils import NS, find_body, get_attr, iter_text, paragraph_text


class TitleSource(str, Enum):
    PROPERTY = "property"
    HEADER = "header"
    HEADING = "heading"
    FIRST_PARAGRAPH = "first_paragraph"
    FILENAME = "filename"


@dataclass(frozen=True)
class ExtractedTitle:
    text: str
    source: TitleSource


_METADATA_KEYWORDS = (
    "Document",
    "Revision",
    "DCR#",
    "DCR",
    "Effective Date",
    "Rev.",
    "Version",
    "Ver.",
    "Date:",
)
_METADATA_PATTERNS = (
    re.compile(r"MF\d+"),
    re.compile(r"\d{1,2}/\d{1,2}/\d{4}"),
    re.compile(r"\d{4}-\d{2}-\d{2}"),
)
_DISALLOWED_CHARS = re.compile(r"[^\w\s&\-()]")
_WHITESPACE = re.compile(r"\s+")
_HEADING_STYLE_MARKERS = ("heading", "title")

MIN_HEADER_RAW_LENGTH = 5
MIN_TITLE_LENGTH = 4
MAX_TITLE_LENGTH = 150
MAX_FIRST_WORDS = 10
MAX_FIRST_TEXT_LENGTH = 80
HEADING_MIN_LENGTH = 5
HEADING_MAX_LENGTH = 100


def extract_title(
    package: DocxPackage,
    filename: str | None,
    log: MergeLog | None = None,
) -> ExtractedTitle:
    source = filename
    if log is not None:
        log.info("Extracting title from target document...", source)
    strategies: tuple[tuple[TitleSource, Callable[[DocxPackage], str | None]], ...] = (
        (TitleSource.PROPERTY, title_from_core_properties),
        (TitleSource.HEADER, lambda pkg: title_from_headers(pkg, log, source)),
        (TitleSource.HEADING, title_from_heading),
        (TitleSource.FIRST_PARAGRAPH, title_from_first_words),
    )
    for title_source, strategy in strategies:
        try:
            text = strategy(package)
        except MergeError as exc:
            if log is not None:
                log.info(f"Title strategy '{title_source.value}' skipped: {exc}", source)
            continue
        if text and text.strip():
            if log is not None:
                log.success(f"Found title via {title_source.value}: \"{text.strip()}\"", source)
            return ExtractedTitle(text=text.strip(), source=title_source)
    fallback = title_from_filename(filename)
    if log is not None:
        log.info(f"Using filename as title: \"{fallback}\"", source)
    return ExtractedTitle(text=fallback, source=TitleSource.FILENAME)


def title_from_core_properties(package: DocxPackage) -> str | None:
    root = package.get_xml(CORE_PROPS_PART)
    if root is None:
        return None
    node = root.find("dc:title", namespaces=NS)
    if node is None or node.text is None:
        return None
    return node.text.strip() or None


def title_from_headers(
    package: DocxPackage,
    log: MergeLog | None = None,
    source: str | None = None,
) -> str | None:
    for part_name in HEADER_PARTS:
        try:
            root = package.get_xml(part_name)
        except MergeError as exc:
            if log is not None:
                log.info(f"Could not read header text from {part_name}: {exc}", source)
            continue
        if root is None:
            continue
        raw_text = " ".join(iter_text(root)).strip()
        if len(raw_text) <= MIN_HEADER_RAW_LENGTH:
            continue
        cleaned = clean_header_title(raw_text)
        if cleaned:
            if log is not None:
                log.debug(f"Header text in {part_name}: \"{raw_text}\" -> \"{cleaned}\"", source)
            return cleaned
    return None


def clean_header_title(raw_text: str) -> str | None:
    kept: list[str] = []
    words = raw_text.split()
    for index, word in enumerate(words):
        # Keywords such as "Effective Date" span two tokens.
        window = " ".join(words[index : index + 2])
        if _is_metadata_token(word) or any(
            keyword in window for keyword in _METADATA_KEYWORDS if " " in keyword
        ):
            break
        kept.append(word)
    text = _WHITESPACE.sub(" ", " ".join(kept)).strip()
    text = _DISALLOWED_CHARS.sub(" ", text)
    text = _WHITESPACE.sub(" ", text).strip()
    if len(text) < MIN_TITLE_LENGTH:
        return None
    if len(text) > MAX_TITLE_LENGTH:
        text = text[: MAX_TITLE_LENGTH - 3] + "..."
    return text


def _is_metadata_token(word: str) -> bool:
    if any(keyword in word for keyword in _METADATA_KEYWORDS):
        return True
    return any(pattern.search(word) for pattern in _METADATA_PATTERNS)


def title_from_heading(package: DocxPackage) -> str | None:
    root = package.get_xml(DOCUMENT_PART)
    if root is None:
        return None
    body = find_body(root)
    if body is None:
        return None
    for paragraph in body.iterfind(".//w:p", namespaces=NS):
        style_id = get_attr(paragraph.find("w:pPr/w:pStyle", namespaces=NS), "val")
        if not style_id:
            continue
        lowered = style_id.lower()
        if not any(marker in lowered for marker in _HEADING_STYLE_MARKERS):
            continue
        text = paragraph_text(paragraph)
        if HEADING_MIN_LENGTH < len(text) < HEADING_MAX_LENGTH:
            return text
    return None


def title_from_first_words(package: DocxPackage) -> str | None:
    root = package.get_xml(DOCUMENT_PART)
    if root is None:
        return None
    body = find_body(root)
    if body is None:
        return None
    words = " ".join(iter_text(body)).split()
    if not words:
        return None
    text = " ".join(words[:MAX_FIRST_WORDS])
    if len(text) > MAX_FIRST_TEXT_LENGTH:
        text = text[: MAX_FIRST_TEXT_LENGTH - 3] + "..."
    return text


def title_from_filename(filename: str | None) -> str:
    if not filename:
        return config.UNTITLED_DOCUMENT
    name = PurePath(filename).name
    stem, dot, _ = name.rpartition(".")
    if not dot or not stem:
        stem = name
    return stem.replace("_", " ")
