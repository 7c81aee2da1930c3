"""Unit tests for the vacuum command."""

import os
import time

import pytest
from rich.console import Console

from mtr.utils.vacuum import VacuumCommand


def make_temp(root, name, age_minutes):
    path = root / name
    path.write_text("partial")
    mtime = time.time() - age_minutes * 60
    os.utime(path, (mtime, mtime))
    return path


@pytest.fixture
def console():
    return Console(record=True, width=120)


class TestVacuumCommand:
    """Test stale temporary file cleanup."""

    def test_finds_only_stale_files(self, tmp_path, console):
        stale = make_temp(tmp_path, ".glue.yaml.abc123.tmp", 90)
        make_temp(tmp_path, ".glue.yaml.fresh.tmp", 5)
        make_temp(tmp_path, "unrelated.tmp", 90)

        found = VacuumCommand(console, tmp_path).find_stale_files()

        assert [info["path"] for info in found] == [stale]
        assert found[0]["age_minutes"] >= 89

    def test_manifest_temp_files_included(self, tmp_path, console):
        make_temp(tmp_path, ".Cargo.toml.x1.tmp", 120)

        assert len(VacuumCommand(console, tmp_path).find_stale_files()) == 1

    def test_execute_removes_stale_files(self, tmp_path, console):
        stale = make_temp(tmp_path, ".glue.yaml.abc123.tmp", 90)
        config = tmp_path / "glue.yaml"
        config.write_text("platforms: []\n")

        VacuumCommand(console, tmp_path).execute()

        assert not stale.exists()
        assert config.exists()
        assert "Removed 1/1 stale files" in console.export_text()

    def test_execute_nothing_to_do(self, tmp_path, console):
        VacuumCommand(console, tmp_path).execute()
        assert "No stale temporary files found" in console.export_text()

    @pytest.mark.parametrize("size,expected", [
        (512, "512.0 B"),
        (2048, "2.0 KB"),
        (5 * 1024 * 1024, "5.0 MB"),
    ])
    def test_format_size(self, tmp_path, console, size, expected):
        assert VacuumCommand(console, tmp_path).format_size(size) == expected
