"""Keyword to target-triple table used by target inference."""

from dataclasses import dataclass
from pathlib import Path
from typing import List

import yaml


@dataclass(frozen=True)
class TargetPattern:
    keyword: str
    target: str


def load_target_patterns() -> List[TargetPattern]:
    """Load targets.yaml shipped with the package, in table order."""
    path = Path(__file__).parent / "targets.yaml"
    data = yaml.safe_load(path.read_text())
    return [TargetPattern(keyword=row["keyword"].lower(), target=row["target"]) for row in data["targets"]]
