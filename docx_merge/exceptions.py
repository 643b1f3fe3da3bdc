from __future__ import annotations

from dataclasses import dataclass


class MergeError(ValueError):
    pass


class InvalidInput(MergeError):
    pass


class CorruptArchive(MergeError):
    pass


class MissingRequiredPart(MergeError):
    def __init__(self, part_name: str, message: str | None = None) -> None:
        self.part_name = part_name
        super().__init__(message or f"missing required part in docx: {part_name}")


class MissingStylesRoot(MergeError):
    pass


class MissingSectionProperties(MergeError):
    pass


class MalformedXml(MergeError):
    def __init__(self, part_name: str | None, reason: str) -> None:
        self.part_name = part_name
        where = part_name or "xml"
        super().__init__(f"failed to parse {where} ({reason})")


@dataclass(frozen=True)
class FileFailure:
    name: str
    message: str
