from __future__ import annotations

import io
from datetime import datetime
from pathlib import Path
from typing import Iterable
from zipfile import ZIP_DEFLATED, ZipFile

from .merger import MergeResult

BUNDLE_PREFIX = "processed_documents"
BUNDLE_TIMESTAMP_FORMAT = "%Y-%m-%dT%H-%M-%S"


def write_outputs(results: Iterable[MergeResult], output_dir: str | Path) -> list[Path]:
    directory = Path(output_dir)
    directory.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    for result in results:
        path = directory / result.output_name
        path.write_bytes(result.data)
        written.append(path)
    return written


def bundle_outputs(results: Iterable[MergeResult]) -> bytes:
    buffer = io.BytesIO()
    with ZipFile(buffer, "w", ZIP_DEFLATED) as archive:
        for result in results:
            archive.writestr(result.output_name, result.data)
    return buffer.getvalue()


def bundle_name(ts: datetime | None = None) -> str:
    if ts is None:
        ts = datetime.now()
    return f"{BUNDLE_PREFIX}_{ts.strftime(BUNDLE_TIMESTAMP_FORMAT)}.zip"


def write_bundle(
    results: Iterable[MergeResult],
    output_dir: str | Path,
    ts: datetime | None = None,
) -> Path:
    directory = Path(output_dir)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / bundle_name(ts)
    path.write_bytes(bundle_outputs(results))
    return path
