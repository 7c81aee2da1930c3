"""Embedded registries: mockable interfaces and target keywords"""

from mtr.registry.interfaces import InterfaceRegistry, RegistryEntry
from mtr.registry.targets import TargetPattern, load_target_patterns

__all__ = ["InterfaceRegistry", "RegistryEntry", "TargetPattern", "load_target_patterns"]
