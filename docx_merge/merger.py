from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path, PurePath
from typing import Callable, Iterable

from . import config
from .config import MergeConfig
from .exceptions import FileFailure, InvalidInput
from .fonts import normalize_fonts, resolve_target_font
from .headers import (
    HeaderFooterPreview,
    header_footer_slots,
    preview_template_parts,
    replace_headers_and_footers,
)
from .merge_log import MergeLog
from .package import DOCUMENT_PART, DocxPackage
from .sections import insert_flow_chart_section
from .title import ExtractedTitle, extract_title


@dataclass(frozen=True)
class MergeResult:
    output_name: str
    source_name: str
    data: bytes = field(repr=False)
    size: int
    extracted_title: str | None = None
    title_source: str | None = None
    success: bool = True
    mime_type: str = config.DOCX_MIME_TYPE


@dataclass
class BatchResult:
    results: list[MergeResult] = field(default_factory=list)
    failures: list[FileFailure] = field(default_factory=list)
    attempted: int = 0
    aborted: bool = False

    @property
    def succeeded(self) -> int:
        return len(self.results)

    @property
    def all_succeeded(self) -> bool:
        return not self.failures and not self.aborted

    def summary(self) -> str:
        return f"{self.succeeded}/{self.attempted} files processed successfully."


def validate_input(name: str, data: bytes) -> None:
    if PurePath(name).suffix.lower() != config.SUPPORTED_EXTENSION:
        raise InvalidInput(f"{name} is not a .docx file")
    if not data:
        raise InvalidInput(f"{name} is empty")
    if len(data) > config.MAX_FILE_SIZE:
        limit_mb = config.MAX_FILE_SIZE // (1024 * 1024)
        raise InvalidInput(f"{name} is too large (max {limit_mb}MB)")


def output_name_for(name: str) -> str:
    stem = PurePath(name).stem or config.UNTITLED_DOCUMENT.replace(" ", "_")
    return f"{stem}{config.OUTPUT_SUFFIX}{config.SUPPORTED_EXTENSION}"


def merge_one(
    template_bytes: bytes,
    target_bytes: bytes,
    target_name: str,
    merge_config: MergeConfig,
    log: MergeLog | None = None,
) -> MergeResult:
    validate_input(target_name, target_bytes)
    source = target_name
    template = DocxPackage.open(template_bytes)
    target = DocxPackage.open(target_bytes)
    if log is not None:
        log.debug("Opened template and target packages", source)

    title: ExtractedTitle | None = None
    if merge_config.extract_title:
        title = extract_title(target, target_name, log)

    replace_headers_and_footers(
        target,
        template,
        title.text if title is not None else None,
        merge_config,
        log,
        source,
    )

    font = resolve_target_font(merge_config, template, log, source)
    if font is None:
        if log is not None:
            log.info("Preserving target document fonts", source)
    else:
        normalize_fonts(target, template, font, log, source)

    if merge_config.insert_flow_chart:
        document_root = target.require_xml(DOCUMENT_PART)
        if insert_flow_chart_section(document_root, log, source):
            target.set_xml(DOCUMENT_PART, document_root)

    data = target.to_bytes()
    return MergeResult(
        output_name=output_name_for(target_name),
        source_name=target_name,
        data=data,
        size=len(data),
        extracted_title=title.text if title is not None else None,
        title_source=title.source.value if title is not None else None,
    )


class DocumentMerger:
    def __init__(
        self,
        template_name: str,
        template_bytes: bytes,
        merge_config: MergeConfig | None = None,
        log: MergeLog | None = None,
    ) -> None:
        self.merge_config = merge_config or MergeConfig()
        self.log = log or MergeLog(debug_mode=self.merge_config.debug_mode)
        validate_input(template_name, template_bytes)
        template = DocxPackage.open(template_bytes)
        if not any(template.has_part(part_name) for _, part_name in header_footer_slots()):
            raise InvalidInput(f"template {template_name} contains no header or footer parts")
        self.template_name = template_name
        self.template_bytes = template_bytes
        self.last_log_path: Path | None = None
        self.log.success(f"Template loaded: {template_name}")

    @classmethod
    def from_path(
        cls,
        path: str | Path,
        merge_config: MergeConfig | None = None,
        log: MergeLog | None = None,
    ) -> "DocumentMerger":
        template_path = Path(path)
        return cls(template_path.name, template_path.read_bytes(), merge_config, log)

    def preview(self) -> list[HeaderFooterPreview]:
        return preview_template_parts(DocxPackage.open(self.template_bytes))

    def process(
        self,
        targets: Iterable[tuple[str, bytes]],
        should_abort: Callable[[], bool] | None = None,
        write_log: bool = True,
    ) -> BatchResult:
        batch = BatchResult()
        pending = list(targets)
        self.log.info(f"Starting processing of {len(pending)} files...")
        for index, (name, data) in enumerate(pending, start=1):
            if should_abort is not None and should_abort():
                batch.aborted = True
                self.log.warning(f"Processing aborted before {name}")
                break
            batch.attempted += 1
            self.log.info(f"Processing file {index}/{len(pending)}: {name}", name)
            try:
                result = merge_one(self.template_bytes, data, name, self.merge_config, self.log)
            except Exception as exc:
                message = str(exc) or exc.__class__.__name__
                batch.failures.append(FileFailure(name=name, message=message))
                self.log.error(f"Error processing {name}: {message}", name)
                self.log.record_failure(f"Processing Error: {name}", message)
                continue
            batch.results.append(result)
            self.log.success(f"Completed: {result.output_name}", name)
        self.log.info(batch.summary())
        self.log.finish()
        if write_log:
            self.last_log_path = self.log.write()
        return batch
