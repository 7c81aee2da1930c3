"""Persisted configuration store"""

from mtr.store.config_store import CONFIG_FILENAME, ConfigStore, effective_settings

__all__ = ["CONFIG_FILENAME", "ConfigStore", "effective_settings"]
