"""Unit tests for download-directory file helpers."""

from __future__ import annotations

import os
import re
import time

from content_harvest.scraper.files import clean_old_files, generate_file_name, save_bytes


class TestGenerateFileName:
    def test_format(self) -> None:
        name = generate_file_name("https://news.example.com/a/b")
        assert re.fullmatch(r"news_example_com_[0-9a-f]{8}_\d+\.json", name)

    def test_extension_without_dot(self) -> None:
        assert generate_file_name("https://example.com/x.png", "png").endswith(".png")

    def test_same_url_same_hash(self) -> None:
        first = generate_file_name("https://example.com/x").split("_")[2]
        second = generate_file_name("https://example.com/x").split("_")[2]
        assert first == second


class TestSaveAndClean:
    def test_save_creates_directory(self, tmp_path) -> None:
        path = save_bytes(tmp_path / "nested" / "dir", "a.bin", b"abc")
        assert path.read_bytes() == b"abc"

    def test_clean_removes_only_old_files(self, tmp_path) -> None:
        old = save_bytes(tmp_path / "images", "old.png", b"1")
        new = save_bytes(tmp_path, "new.png", b"2")
        ten_days_ago = time.time() - 10 * 86_400
        os.utime(old, (ten_days_ago, ten_days_ago))

        assert clean_old_files(tmp_path, max_age_days=7) == 1
        assert not old.exists()
        assert new.exists()

    def test_missing_directory(self, tmp_path) -> None:
        assert clean_old_files(tmp_path / "nope") == 0
