"""Integration tests for the mtr command line"""

import shutil
from unittest.mock import patch

import pytest
import yaml
from typer.testing import CliRunner

from mtr import cli
from mtr.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def wide_console(monkeypatch):
    """Keep rich panels and tables from wrapping asserted messages"""
    monkeypatch.setattr(cli.console, "width", 200)


def invoke(project, *args, **kwargs):
    return runner.invoke(app, ["--project", str(project), *args], **kwargs)


def yaml_report(output: str) -> dict:
    return yaml.safe_load(output[output.index("applied:"):])


@pytest.fixture
def initialized(workspace, demo_hal_dir):
    """Workspace with one analyzed platform backed by the on-disk demo HAL"""
    result = invoke(workspace, "glue", "init", "stm32", str(demo_hal_dir))
    assert result.exit_code == 0, result.output
    return workspace


class TestInit:

    def test_init_creates_project(self, tmp_path):
        result = invoke(tmp_path, "init", "proj")

        assert result.exit_code == 0, result.output
        project = tmp_path / "proj"
        for path in ("Cargo.toml", "core-lib/src/lib.rs", "tests/Cargo.toml", "glue.yaml", ".cargo/config.toml"):
            assert (project / path).exists(), path

    def test_init_existing_directory_fails(self, tmp_path):
        (tmp_path / "proj").mkdir()

        result = invoke(tmp_path, "init", "proj")

        assert result.exit_code == 1
        assert "already exists" in result.output


class TestGlueWorkflow:

    def test_glue_init_reports_platform(self, initialized):
        result = invoke(initialized, "glue", "list")

        assert result.exit_code == 0
        assert "stm32" in result.output
        assert "Analyzed" in result.output

    def test_validate_yaml_report(self, initialized):
        result = invoke(initialized, "glue", "validate", "--format", "yaml")

        assert result.exit_code == 0, result.output
        report = yaml_report(result.output)
        assert report["applied"] is False
        assert report["errors"] == 0
        assert report["warnings"] == 1
        platform = report["platforms"][0]
        assert platform["status"] == "Validated"
        assert platform["native_mockable"] == ["InputPin", "OutputPin"]
        assert platform["target_identifier"] == "thumbv7em-none-eabihf"

    def test_apply_scaffolds_units(self, initialized):
        result = invoke(initialized, "glue", "validate", "--apply")

        assert result.exit_code == 0, result.output
        assert (initialized / "hal-stm32" / "src" / "lib.rs").exists()
        assert (initialized / "app-stm32" / "memory.x").exists()
        manifest = (initialized / "Cargo.toml").read_text()
        assert '"hal-stm32"' in manifest
        assert '"app-stm32"' in manifest
        hal_manifest = (initialized / "hal-stm32" / "Cargo.toml").read_text()
        assert 'demo-hal = { version = "0.3.1" }' in hal_manifest

    def test_remove_then_validate_warns_about_orphans(self, initialized):
        assert invoke(initialized, "glue", "validate", "--apply").exit_code == 0
        assert invoke(initialized, "glue", "remove", "stm32").exit_code == 0

        result = invoke(initialized, "glue", "validate", "--format", "yaml")

        assert result.exit_code == 0, result.output
        report = yaml_report(result.output)
        assert [d["message"] for d in report["diagnostics"]] == [
            "orphan unit; consider removal: app-stm32",
            "orphan unit; consider removal: hal-stm32",
        ]
        assert (initialized / "hal-stm32").exists()

    def test_remove_unknown_platform(self, initialized):
        result = invoke(initialized, "glue", "remove", "esp32")

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_duplicate_init_fails(self, initialized, demo_hal_dir):
        result = invoke(initialized, "glue", "init", "stm32", str(demo_hal_dir))

        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_apply_refused_on_error(self, initialized):
        (initialized / "core-lib" / "Cargo.toml").unlink()

        result = invoke(initialized, "glue", "validate", "--apply", "--format", "yaml")

        assert result.exit_code == 1
        assert yaml_report(result.output)["applied"] is False
        assert not (initialized / "hal-stm32").exists()

    def test_sync_recreates_missing_unit(self, initialized):
        assert invoke(initialized, "glue", "validate", "--apply").exit_code == 0
        (initialized / "app-stm32" / "Cargo.toml").unlink()
        (initialized / "app-stm32" / "src" / "main.rs").unlink()

        result = invoke(initialized, "glue", "sync")

        assert result.exit_code == 0, result.output
        assert (initialized / "app-stm32" / "Cargo.toml").exists()
        assert invoke(initialized, "glue", "validate").exit_code == 0

    def test_relative_source_under_project(self, workspace, demo_hal_dir):
        shutil.copytree(demo_hal_dir, workspace / "vendor" / "demo-hal")

        result = invoke(workspace, "glue", "init", "stm32", "vendor/demo-hal")

        assert result.exit_code == 0, result.output
        assert "Unsupported repository location" not in result.output
        assert "Analyzed" in invoke(workspace, "glue", "list").output

    def test_unknown_format(self, initialized):
        result = invoke(initialized, "glue", "validate", "--format", "json")
        assert result.exit_code == 1


class TestAddPlatform:

    def test_add_platform_registers_and_scaffolds(self, workspace, demo_hal_dir):
        result = invoke(workspace, "add-platform", "linuxbox", str(demo_hal_dir),
                        "--target", "x86_64-unknown-linux-gnu")

        assert result.exit_code == 0, result.output
        assert (workspace / "app-linuxbox" / "src" / "main.rs").exists()
        assert not (workspace / "app-linuxbox" / "memory.x").exists()

        listing = invoke(workspace, "list-platforms")
        assert "Registered" in listing.output


class TestExitCodes:

    def test_corrupt_config_exits_3(self, workspace):
        (workspace / "glue.yaml").write_text("platforms: [unclosed\n")

        result = invoke(workspace, "glue", "list")

        assert result.exit_code == 3
        assert "corrupt" in result.output

    def test_unreachable_source_exits_2(self, workspace, tmp_path):
        result = invoke(
            workspace, "glue", "init", "ghost", str(tmp_path / "absent"),
            env={"MTR_FETCH_ATTEMPTS": "1"},
        )

        assert result.exit_code == 2
        assert "ghost" not in (workspace / "glue.yaml").read_text()

    def test_validate_with_vanished_source_exits_2(self, initialized, demo_hal_dir):
        shutil.rmtree(demo_hal_dir)

        result = invoke(initialized, "glue", "validate", "--format", "yaml", env={"MTR_FETCH_ATTEMPTS": "1"})

        assert result.exit_code == 2
        report = yaml_report(result.output)
        assert report["unreachable"] == ["stm32"]
        assert report["platforms"][0]["name"] == "stm32"

    def test_build_unknown_platform(self, workspace):
        assert invoke(workspace, "build", "--platform", "nope").exit_code == 1

    def test_test_without_cargo(self, workspace):
        with patch("mtr.engine.toolchain.shutil.which", return_value=None):
            result = invoke(workspace, "test")

        assert result.exit_code == 1
        assert "cargo" in result.output


def test_test_on_target_guidance(initialized):
    result = invoke(initialized, "test", "--platform", "stm32")

    assert result.exit_code == 0
    assert "probe-rs" in result.output


def test_version():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert "MTR Version Information" in result.output
    assert "Interface Registry" in result.output


def test_vacuum(workspace):
    result = invoke(workspace, "vacuum")

    assert result.exit_code == 0
    assert "No stale temporary files found" in result.output
