"""Workspace and generated-unit scaffolding"""

from mtr.scaffold.scaffolder import Scaffolder

__all__ = ["Scaffolder"]
