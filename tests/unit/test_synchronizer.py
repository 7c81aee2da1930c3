"""Unit tests for WorkspaceSynchronizer"""

from mtr.engine.synchronizer import CORE_UNITS, WorkspaceSynchronizer
from mtr.models.glue import Platform, PlatformStatus, Severity, SourceReference
from mtr.scaffold.scaffolder import Scaffolder


def make_platform(name: str, status: PlatformStatus = PlatformStatus.REGISTERED) -> Platform:
    return Platform(
        name=name,
        target_identifier="thumbv7em-none-eabihf",
        source_reference=SourceReference(repository_url=f"https://github.com/acme/{name}-hal"),
        hal_crate=f"{name}-hal",
        status=status,
    )


def messages(result, severity=None):
    return [d.message for d in result.diagnostics if severity is None or d.severity == severity]


class TestFreshWorkspace:

    def test_clean_workspace_in_sync(self, workspace):
        result = WorkspaceSynchronizer(workspace).synchronize([])

        assert result.diagnostics == []
        assert result.delta.is_empty
        assert result.delta.members == sorted(CORE_UNITS)

    def test_actual_units(self, workspace):
        assert WorkspaceSynchronizer(workspace).actual_units() == {"core-lib", "tests"}

    def test_read_members(self, workspace):
        assert WorkspaceSynchronizer(workspace).read_members() == ["core-lib", "tests"]

    def test_unregistered_platforms_expect_nothing(self, workspace):
        platforms = [
            make_platform("a", PlatformStatus.PROPOSED),
            make_platform("b", PlatformStatus.ANALYZED),
            make_platform("c", PlatformStatus.VALIDATED),
            make_platform("d", PlatformStatus.REMOVED),
        ]

        result = WorkspaceSynchronizer(workspace).synchronize(platforms)

        assert result.diagnostics == []


class TestMissingUnits:

    def test_registered_platform_without_units(self, workspace):
        result = WorkspaceSynchronizer(workspace).synchronize([make_platform("stm32")])

        errors = messages(result, Severity.ERROR)
        assert "missing scaffold for platform: stm32 (hal-stm32, app-stm32)" in errors
        assert "workspace membership out of sync (missing app-stm32, hal-stm32)" in errors
        assert [u.name for u in result.delta.units_to_create] == ["hal-stm32", "app-stm32"]
        assert [u.kind for u in result.delta.units_to_create] == ["hal", "app"]
        assert result.missing_platforms == ["stm32"]
        assert result.delta.members == ["app-stm32", "core-lib", "hal-stm32", "tests"]

    def test_missing_core_unit_only_error(self, workspace):
        (workspace / "tests" / "Cargo.toml").unlink()

        result = WorkspaceSynchronizer(workspace).synchronize([])

        assert messages(result) == ["missing scaffold for core unit: tests"]
        assert result.has_errors
        assert result.delta.units_to_create[0].kind == "core"

    def test_applied_delta_converges(self, workspace):
        platform = make_platform("stm32")
        synchronizer = WorkspaceSynchronizer(workspace)

        first = synchronizer.synchronize([platform])
        Scaffolder(workspace).apply_delta(first.delta, {"stm32": platform})
        second = synchronizer.synchronize([platform])

        assert second.diagnostics == []
        assert second.delta.is_empty
        assert synchronizer.read_members() == ["app-stm32", "core-lib", "hal-stm32", "tests"]


class TestOrphansAndMembers:

    def test_orphan_unit_is_warning_and_tolerated_member(self, workspace):
        platform = make_platform("old")
        synchronizer = WorkspaceSynchronizer(workspace)
        Scaffolder(workspace).apply_delta(synchronizer.synchronize([platform]).delta, {"old": platform})

        removed = platform.model_copy(update={"status": PlatformStatus.REMOVED})
        result = synchronizer.synchronize([removed])

        assert messages(result) == [
            "orphan unit; consider removal: app-old",
            "orphan unit; consider removal: hal-old",
        ]
        assert not result.has_errors
        assert result.delta.members_in_sync
        assert result.delta.orphan_units == ["app-old", "hal-old"]
        assert result.delta.members == ["app-old", "core-lib", "hal-old", "tests"]

    def test_deleted_orphan_leaves_stale_member(self, workspace):
        Scaffolder(workspace).write_members(["core-lib", "gone", "tests"])

        result = WorkspaceSynchronizer(workspace).synchronize([])

        assert messages(result) == ["workspace membership out of sync (unexpected gone)"]
        assert result.delta.members == ["core-lib", "tests"]

    def test_duplicate_members(self, workspace):
        Scaffolder(workspace).write_members(["core-lib", "tests", "tests"])

        result = WorkspaceSynchronizer(workspace).synchronize([])

        assert messages(result) == ["workspace membership out of sync (duplicate entries)"]

    def test_unsorted_members(self, workspace):
        Scaffolder(workspace).write_members(["tests", "core-lib"])
        synchronizer = WorkspaceSynchronizer(workspace)

        result = synchronizer.synchronize([])

        assert messages(result) == ["workspace membership out of sync (members not sorted)"]
        assert result.has_errors
        assert result.delta.members == ["core-lib", "tests"]

        Scaffolder(workspace).apply_delta(result.delta, {})
        assert synchronizer.synchronize([]).diagnostics == []

    def test_unreadable_manifest(self, workspace):
        (workspace / "Cargo.toml").write_text("[workspace\n")

        result = WorkspaceSynchronizer(workspace).synchronize([])

        assert len(result.diagnostics) == 1
        assert "cannot read [workspace] members" in result.diagnostics[0].message
        assert not result.delta.members_in_sync

    def test_synchronize_is_read_only(self, workspace):
        before = (workspace / "Cargo.toml").read_bytes()

        WorkspaceSynchronizer(workspace).synchronize([make_platform("stm32")])

        assert (workspace / "Cargo.toml").read_bytes() == before
        assert not (workspace / "hal-stm32").exists()
