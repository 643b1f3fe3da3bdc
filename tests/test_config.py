import json
import os
import unittest
from datetime import datetime
from pathlib import Path
from tempfile import TemporaryDirectory

from docx_merge import config
from docx_merge.config import MergeConfig, load_merge_config


class ConfigTests(unittest.TestCase):
    def test_log_dir(self) -> None:
        self.assertEqual(config.LOG_DIR.name, "logs")

    def test_build_log_path(self) -> None:
        ts = datetime(2024, 1, 2, 3, 4, 5)
        log_path = config.build_log_path(ts)
        self.assertEqual(log_path.parent, config.LOG_DIR)
        self.assertEqual(log_path.name, "docx_merge_20240102_030405.log")

    def test_build_log_path_default_timestamp(self) -> None:
        log_path = config.build_log_path()
        self.assertEqual(log_path.parent, config.LOG_DIR)

    def test_base_dirs_paths(self) -> None:
        self.assertEqual(config.OUTPUT_DIR, config.PROJECT_ROOT / "output")
        self.assertEqual(config.LOG_DIR, config.PROJECT_ROOT / "logs")

    def test_input_limits(self) -> None:
        self.assertEqual(config.MAX_FILE_SIZE, 50 * 1024 * 1024)
        self.assertEqual(config.SUPPORTED_EXTENSION, ".docx")
        self.assertEqual(config.PLACEHOLDER_TOKEN, "{Enter SOP Title}")

    def test_cleanup_logs_removes_old_files(self) -> None:
        original_log_dir = config.LOG_DIR
        with TemporaryDirectory() as tmpdir:
            config.LOG_DIR = Path(tmpdir)
            try:
                old_log = config.LOG_DIR / f"{config.LOG_FILE_PREFIX}_old.log"
                new_log = config.LOG_DIR / f"{config.LOG_FILE_PREFIX}_new.log"
                other = config.LOG_DIR / "unrelated_old.log"
                for path in (old_log, new_log, other):
                    path.write_text("x", encoding="utf-8")
                base_time = datetime(2024, 1, 10, 12, 0, 0)
                old_time = base_time.timestamp() - 6 * 86400
                new_time = base_time.timestamp() - 2 * 86400
                os.utime(old_log, (old_time, old_time))
                os.utime(other, (old_time, old_time))
                os.utime(new_log, (new_time, new_time))

                removed = config.cleanup_logs(retention_days=5, now=base_time)

                self.assertEqual(removed, 1)
                self.assertFalse(old_log.exists())
                self.assertTrue(new_log.exists())
                self.assertTrue(other.exists())
            finally:
                config.LOG_DIR = original_log_dir

    def test_cleanup_logs_disabled(self) -> None:
        self.assertEqual(config.cleanup_logs(retention_days=0), 0)


class MergeConfigTests(unittest.TestCase):
    def test_defaults(self) -> None:
        merge_config = MergeConfig()
        self.assertFalse(merge_config.debug_mode)
        self.assertFalse(merge_config.insert_flow_chart)
        self.assertFalse(merge_config.preserve_target_fonts)
        self.assertIsNone(merge_config.font_override)
        self.assertTrue(merge_config.extract_title)

    def test_blank_font_override_is_none(self) -> None:
        self.assertIsNone(MergeConfig(font_override="   ").font_override)
        self.assertEqual(MergeConfig(font_override=" Arial ").font_override, "Arial")

    def test_from_dict_accepts_camel_case(self) -> None:
        merge_config = MergeConfig.from_dict(
            {
                "debugMode": True,
                "insertFlowChart": True,
                "preserveTargetFonts": False,
                "fontOverride": "Verdana",
                "extractTitle": False,
            }
        )
        self.assertTrue(merge_config.debug_mode)
        self.assertTrue(merge_config.insert_flow_chart)
        self.assertEqual(merge_config.font_override, "Verdana")
        self.assertFalse(merge_config.extract_title)

    def test_from_dict_rejects_bad_values(self) -> None:
        with self.assertRaises(ValueError):
            MergeConfig.from_dict(["debugMode"])
        with self.assertRaises(ValueError):
            MergeConfig.from_dict({"debugMode": "yes"})
        with self.assertRaises(ValueError):
            MergeConfig.from_dict({"fontOverride": 12})
        with self.assertRaises(ValueError):
            MergeConfig.from_dict({"unknown": True})

    def test_to_dict_round_trips(self) -> None:
        merge_config = MergeConfig(insert_flow_chart=True, font_override="Arial")
        self.assertEqual(MergeConfig.from_dict(merge_config.to_dict()), merge_config)

    def test_load_merge_config(self) -> None:
        with TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "merge.json"
            path.write_text(json.dumps({"preserveTargetFonts": True}), encoding="utf-8")
            self.assertTrue(load_merge_config(path).preserve_target_fonts)

            broken = Path(tmpdir) / "broken.json"
            broken.write_text("{not json", encoding="utf-8")
            with self.assertRaises(ValueError):
                load_merge_config(broken)

            with self.assertRaises(FileNotFoundError):
                load_merge_config(Path(tmpdir) / "missing.json")


if __name__ == "__main__":
    unittest.main()
