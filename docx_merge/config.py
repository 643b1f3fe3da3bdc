from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
OUTPUT_DIR = PROJECT_ROOT / "output"
LOG_DIR = PROJECT_ROOT / "logs"

LOG_FILE_PREFIX = "docx_merge"
LOG_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"

MAX_FILE_SIZE = 50 * 1024 * 1024
SUPPORTED_EXTENSION = ".docx"
DOCX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
PLACEHOLDER_TOKEN = "{Enter SOP Title}"
DEFAULT_FONT_NAME = "Calibri"
OUTPUT_SUFFIX = "_updated"
UNTITLED_DOCUMENT = "Untitled Document"

_OPTION_ALIASES = {
    "debugMode": "debug_mode",
    "insertFlowChart": "insert_flow_chart",
    "preserveTargetFonts": "preserve_target_fonts",
    "fontOverride": "font_override",
    "extractTitle": "extract_title",
}
_BOOL_OPTIONS = ("debug_mode", "insert_flow_chart", "preserve_target_fonts", "extract_title")


@dataclass(frozen=True)
class MergeConfig:
    debug_mode: bool = False
    insert_flow_chart: bool = False
    preserve_target_fonts: bool = False
    font_override: str | None = None
    extract_title: bool = True

    def __post_init__(self) -> None:
        font = self.font_override.strip() if isinstance(self.font_override, str) else None
        object.__setattr__(self, "font_override", font or None)

    @classmethod
    def from_dict(cls, data: object) -> "MergeConfig":
        if not isinstance(data, dict):
            raise ValueError("merge config must be a JSON object")
        values: dict[str, object] = {}
        for raw_key, value in data.items():
            if not isinstance(raw_key, str):
                raise ValueError("merge config keys must be strings")
            key = _OPTION_ALIASES.get(raw_key, raw_key)
            if key in _BOOL_OPTIONS:
                if not isinstance(value, bool):
                    raise ValueError(f"merge config option {raw_key!r} must be a boolean")
                values[key] = value
            elif key == "font_override":
                if value is not None and not isinstance(value, str):
                    raise ValueError("merge config option 'font_override' must be a string or null")
                values[key] = value
            else:
                raise ValueError(f"unknown merge config option: {raw_key!r}")
        return cls(**values)

    def to_dict(self) -> dict[str, object]:
        return {
            "debug_mode": self.debug_mode,
            "insert_flow_chart": self.insert_flow_chart,
            "preserve_target_fonts": self.preserve_target_fonts,
            "font_override": self.font_override,
            "extract_title": self.extract_title,
        }


def load_merge_config(path: str | Path) -> MergeConfig:
    config_path = Path(path)
    if not config_path.is_file():
        raise FileNotFoundError(f"merge config not found: {config_path}")
    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"invalid merge config JSON: {config_path} ({exc})") from exc
    return MergeConfig.from_dict(raw)


def ensure_base_dirs() -> None:
    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    LOG_DIR.mkdir(parents=True, exist_ok=True)


def build_log_path(ts: datetime | None = None) -> Path:
    if ts is None:
        ts = datetime.now()
    name = f"{LOG_FILE_PREFIX}_{ts.strftime(LOG_TIMESTAMP_FORMAT)}.log"
    return LOG_DIR / name


def cleanup_logs(retention_days: int = 5, now: datetime | None = None) -> int:
    if retention_days <= 0:
        return 0
    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
    except OSError:
        return 0
    base_time = now or datetime.now()
    cutoff = base_time.timestamp() - retention_days * 86400
    removed = 0
    for path in LOG_DIR.glob(f"{LOG_FILE_PREFIX}_*.log"):
        try:
            if path.stat().st_mtime < cutoff:
                path.unlink()
                removed += 1
        except OSError:
            continue
    return removed
