"""ConfigStore: sole owner of the persisted glue configuration."""

import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

import yaml
from pydantic import ValidationError

from mtr.exceptions import ConfigCorruptError, DuplicatePlatformError, NotFoundError
from mtr.models.glue import GlueConfig, GlueSettings, Platform, PlatformStatus
from mtr.utils.context_managers import AtomicFileWriter, ExclusiveFileLock

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "glue.yaml"

ENV_OVERRIDES = {
    "MTR_FETCH_CONCURRENCY": "fetch_concurrency",
    "MTR_FETCH_ATTEMPTS": "fetch_attempts",
    "MTR_FETCH_BACKOFF": "fetch_backoff_seconds",
    "MTR_MAX_FILES": "max_files",
    "MTR_REGISTRY_PATH": "registry_path",
}


def effective_settings(settings: GlueSettings, environ: Optional[Mapping[str, str]] = None) -> GlueSettings:
    """Apply MTR_* environment overrides on top of persisted settings.

    Overrides are never written back to glue.yaml.
    """
    environ = os.environ if environ is None else environ
    updates = {
        field: environ[var]
        for var, field in ENV_OVERRIDES.items()
        if environ.get(var)
    }
    if not updates:
        return settings
    return GlueSettings(**{**settings.model_dump(), **updates})


class ConfigStore:
    """Load, atomically replace and edit glue.yaml.

    Every mutation follows "load, compute new value, atomically replace".
    Writers serialize on an exclusive lock; readers see the last committed
    snapshot.
    """

    def __init__(self, config_path: Path = Path(CONFIG_FILENAME)):
        """Initialize store with config path.

        Args:
            config_path: Path to glue.yaml (default: ./glue.yaml)
        """
        self.config_path = config_path

    def exists(self) -> bool:
        return self.config_path.exists()

    def load(self) -> GlueConfig:
        """Load the last committed configuration.

        Returns:
            GlueConfig snapshot; empty configuration if the file does not exist

        Raises:
            ConfigCorruptError: If the file cannot be fully parsed
        """
        if not self.exists():
            return GlueConfig()

        try:
            text = self.config_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigCorruptError(str(self.config_path), str(e)) from e

        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigCorruptError(str(self.config_path), f"invalid YAML: {e}") from e

        return self._from_document(data)

    def replace(self, new: GlueConfig) -> None:
        """Atomically replace the persisted configuration.

        Args:
            new: Configuration to install

        Raises:
            ConfigCorruptError: If the new configuration cannot be serialized
        """
        document = self._serialize(new)
        with ExclusiveFileLock(self.config_path):
            self._write(document)

    def update(self, fn: Callable[[GlueConfig], GlueConfig]) -> GlueConfig:
        """Read-modify-write under the exclusive lock.

        Args:
            fn: Receives the last committed snapshot, returns the new value

        Returns:
            The configuration that was committed
        """
        with ExclusiveFileLock(self.config_path):
            current = self.load()
            new = fn(current)
            self._write(self._serialize(new))
        return new

    def add(self, platform: Platform) -> GlueConfig:
        """Add a platform, replacing a Removed tombstone of the same name.

        Raises:
            DuplicatePlatformError: If an active platform has the same name
        """
        def _add(config: GlueConfig) -> GlueConfig:
            existing = config.platforms.get(platform.name)
            if existing is not None and existing.status != PlatformStatus.REMOVED:
                raise DuplicatePlatformError(platform.name)

            platforms = dict(config.platforms)
            if existing is not None:
                logger.info("Replacing tombstone of platform '%s'", platform.name)
                platforms.pop(platform.name)
            platforms[platform.name] = platform
            return config.model_copy(update={"platforms": platforms})

        return self.update(_add)

    def remove(self, name: str) -> GlueConfig:
        """Tombstone a platform (status Removed).

        Raises:
            NotFoundError: If the platform is unknown or already removed
        """
        def _remove(config: GlueConfig) -> GlueConfig:
            existing = config.platforms.get(name)
            if existing is None or existing.status == PlatformStatus.REMOVED:
                raise NotFoundError(name, [p.name for p in config.active_platforms()])

            platforms = dict(config.platforms)
            platforms[name] = existing.model_copy(update={"status": PlatformStatus.REMOVED})
            return config.model_copy(update={"platforms": platforms})

        return self.update(_remove)

    def get(self, name: str) -> Platform:
        """Get an active platform by name.

        Raises:
            NotFoundError: If the platform is unknown or removed
        """
        config = self.load()
        platform = config.platforms.get(name)
        if platform is None or platform.status == PlatformStatus.REMOVED:
            raise NotFoundError(name, [p.name for p in config.active_platforms()])
        return platform

    def _write(self, document: str) -> None:
        with AtomicFileWriter(self.config_path) as f:
            f.write(document)
        logger.debug("Committed %s", self.config_path)

    def _serialize(self, config: GlueConfig) -> str:
        data: Dict[str, Any] = {
            "version": config.version,
            "settings": config.settings.model_dump(mode="json", exclude_none=True),
            "platforms": [
                platform.model_dump(mode="json")
                for platform in config.platforms.values()
            ],
        }
        return yaml.safe_dump(data, sort_keys=False, default_flow_style=False, indent=2)

    def _from_document(self, data: Any) -> GlueConfig:
        path = str(self.config_path)

        if data is None:
            return GlueConfig()
        if not isinstance(data, dict):
            raise ConfigCorruptError(path, "top level must be a mapping")

        records = data.get("platforms") or []
        if not isinstance(records, list):
            raise ConfigCorruptError(path, "'platforms' must be a list of platform records")

        platforms: Dict[str, Platform] = {}
        try:
            for record in records:
                platform = Platform.model_validate(record)
                if platform.name in platforms:
                    raise ConfigCorruptError(path, f"duplicate platform name '{platform.name}'")
                platforms[platform.name] = platform

            return GlueConfig(
                version=str(data.get("version", "1")),
                settings=GlueSettings.model_validate(data.get("settings") or {}),
                platforms=platforms,
            )
        except ValidationError as e:
            raise ConfigCorruptError(path, f"schema violation: {e.error_count()} error(s)\n{e}") from e
