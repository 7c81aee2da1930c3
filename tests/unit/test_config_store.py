"""Unit tests for ConfigStore"""

import threading
from unittest.mock import patch

import pytest

from mtr.exceptions import ConfigCorruptError, DuplicatePlatformError, NotFoundError
from mtr.models.glue import (
    Diagnostic,
    GlueConfig,
    GlueSettings,
    InterfaceCategory,
    InterfaceRecord,
    Platform,
    PlatformStatus,
    SourceLocation,
    SourceReference,
)
from mtr.store.config_store import ConfigStore, effective_settings


def make_platform(name: str, status: PlatformStatus = PlatformStatus.PROPOSED) -> Platform:
    return Platform(
        name=name,
        target_identifier="thumbv7em-none-eabihf",
        source_reference=SourceReference(repository_url=f"https://github.com/acme/{name}-hal"),
        status=status,
    )


@pytest.fixture
def store(tmp_path):
    return ConfigStore(tmp_path / "glue.yaml")


def test_load_missing_file_is_empty(store):
    config = store.load()

    assert config.platforms == {}
    assert config.settings == GlueSettings()


def test_add_and_load_preserves_insertion_order(store):
    for name in ["zeta", "alpha", "mid"]:
        store.add(make_platform(name))

    assert list(store.load().platforms) == ["zeta", "alpha", "mid"]


def test_round_trip_keeps_analysis(store):
    record = InterfaceRecord(
        name="OutputPin",
        module_path="demo_hal::digital",
        category=InterfaceCategory.DIGITAL_IO,
        mockable=True,
        declared_at=SourceLocation(path="src/digital.rs", line=1, column=11),
        implementors=["Pin"],
    )
    platform = make_platform("stm32").model_copy(update={
        "interfaces": [record],
        "diagnostics": [Diagnostic.warning("interface 'X' may not be available for native testing", "c::X")],
        "status": PlatformStatus.ANALYZED,
    })
    store.add(platform)

    loaded = store.get("stm32")
    assert loaded == platform
    assert loaded.mockable_interfaces == ["OutputPin"]
    assert loaded.warning_count == 1


def test_duplicate_add_leaves_store_unchanged(store):
    store.add(make_platform("stm32"))
    before = store.config_path.read_bytes()

    with pytest.raises(DuplicatePlatformError):
        store.add(make_platform("stm32"))

    assert store.config_path.read_bytes() == before


def test_names_are_case_sensitive(store):
    store.add(make_platform("stm32"))
    store.add(make_platform("STM32"))

    assert list(store.load().platforms) == ["stm32", "STM32"]


def test_remove_tombstones_platform(store):
    store.add(make_platform("stm32"))
    store.remove("stm32")

    config = store.load()
    assert config.platforms["stm32"].status == PlatformStatus.REMOVED
    assert config.active_platforms() == []


def test_remove_unknown_raises(store):
    store.add(make_platform("stm32"))

    with pytest.raises(NotFoundError) as exc_info:
        store.remove("esp32")
    assert "stm32" in exc_info.value.help_text


def test_remove_twice_raises(store):
    store.add(make_platform("stm32"))
    store.remove("stm32")

    with pytest.raises(NotFoundError):
        store.remove("stm32")


def test_readd_after_remove_creates_fresh_record(store):
    store.add(make_platform("stm32", PlatformStatus.REGISTERED))
    store.remove("stm32")
    store.add(make_platform("stm32"))

    assert store.get("stm32").status == PlatformStatus.PROPOSED


def test_get_removed_raises(store):
    store.add(make_platform("stm32"))
    store.remove("stm32")

    with pytest.raises(NotFoundError):
        store.get("stm32")


class TestCorruption:

    def test_invalid_yaml(self, store):
        store.config_path.write_text("platforms: [unclosed\n")

        with pytest.raises(ConfigCorruptError) as exc_info:
            store.load()
        assert exc_info.value.exit_code == 3

    def test_top_level_not_mapping(self, store):
        store.config_path.write_text("- a\n- b\n")

        with pytest.raises(ConfigCorruptError):
            store.load()

    def test_schema_violation_is_not_partially_loaded(self, store):
        store.add(make_platform("good"))
        text = store.config_path.read_text()
        store.config_path.write_text(text + "- name: bad\n  status: Exploded\n")

        with pytest.raises(ConfigCorruptError) as exc_info:
            store.load()
        assert "schema violation" in exc_info.value.reason

    def test_duplicate_names_in_file(self, store):
        store.add(make_platform("stm32"))
        text = store.config_path.read_text()
        platform_block = text[text.index("- name: stm32"):]
        store.config_path.write_text(text + platform_block)

        with pytest.raises(ConfigCorruptError) as exc_info:
            store.load()
        assert "duplicate platform name" in exc_info.value.reason

    def test_empty_file_is_empty_config(self, store):
        store.config_path.write_text("")
        assert store.load() == GlueConfig()


class TestAtomicity:

    def test_failed_rename_keeps_previous_config(self, store):
        store.add(make_platform("stm32"))
        before = store.config_path.read_bytes()

        with patch("mtr.utils.context_managers.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                store.add(make_platform("nrf52"))

        assert store.config_path.read_bytes() == before
        assert list(store.load().platforms) == ["stm32"]
        assert list(store.config_path.parent.glob(".glue.yaml.*.tmp")) == []

    def test_failed_flush_keeps_previous_config(self, store):
        store.add(make_platform("stm32"))

        with patch("mtr.utils.context_managers.os.fsync", side_effect=OSError("I/O error")):
            with pytest.raises(OSError):
                store.replace(GlueConfig())

        assert list(store.load().platforms) == ["stm32"]
        assert list(store.config_path.parent.glob(".glue.yaml.*.tmp")) == []

    def test_failed_update_function_writes_nothing(self, store):
        store.add(make_platform("stm32"))
        before = store.config_path.read_bytes()

        def explode(config):
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            store.update(explode)

        assert store.config_path.read_bytes() == before


def test_concurrent_updates_serialize(store):
    names = [f"board{i}" for i in range(12)]
    threads = [threading.Thread(target=store.add, args=(make_platform(name),)) for name in names]

    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(store.load().platforms) == sorted(names)


def test_settings_persist(store):
    store.replace(GlueConfig(settings=GlueSettings(fetch_concurrency=4, registry_path="extra.yaml")))

    settings = store.load().settings
    assert settings.fetch_concurrency == 4
    assert settings.registry_path == "extra.yaml"


class TestEffectiveSettings:

    def test_no_overrides_returns_same(self):
        settings = GlueSettings()
        assert effective_settings(settings, environ={}) is settings

    def test_env_overrides(self):
        settings = effective_settings(
            GlueSettings(fetch_concurrency=8),
            environ={"MTR_FETCH_CONCURRENCY": "2", "MTR_FETCH_ATTEMPTS": "5"},
        )

        assert settings.fetch_concurrency == 2
        assert settings.fetch_attempts == 5
