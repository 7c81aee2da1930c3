"""TargetInferencer: best-effort build-target deduction."""

import logging
import re
import tomllib
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from mtr.fetch.fetcher import SourceFile
from mtr.models.glue import Diagnostic
from mtr.registry.targets import TargetPattern, load_target_patterns

logger = logging.getLogger(__name__)

UNKNOWN_TARGET = "unknown"


@dataclass
class Inference:
    target_identifier: str
    source: str
    package_version: Optional[str] = None
    diagnostics: List[Diagnostic] = field(default_factory=list)


def _load_toml(source: Optional[SourceFile]) -> Dict[str, Any]:
    if source is None:
        return {}
    try:
        return tomllib.loads(source.data.decode("utf-8"))
    except (UnicodeDecodeError, tomllib.TOMLDecodeError) as e:
        logger.debug("Ignoring unreadable %s: %s", source.path, e)
        return {}


class TargetInferencer:
    """Deduce a target triple from manifests and repository name tokens.

    Never fails: when nothing matches the result is "unknown" plus a Warning.
    """

    def __init__(self, patterns: Optional[Sequence[TargetPattern]] = None):
        self.patterns = list(patterns) if patterns is not None else load_target_patterns()

    def infer(self, files: Sequence[SourceFile], repository_name: str = "") -> Inference:
        by_path = {f.path: f for f in files}
        manifest = _load_toml(by_path.get("Cargo.toml"))
        package = manifest.get("package") if isinstance(manifest.get("package"), dict) else {}
        version = package.get("version") if isinstance(package.get("version"), str) else None

        hinted = self._explicit_hint(by_path, package)
        if hinted is not None:
            target, source = hinted
            logger.info("Target %s taken from %s", target, source)
            return Inference(target_identifier=target, source=source, package_version=version)

        pattern = None
        for tokens in self._token_tiers(files, repository_name):
            pattern = self.match_keywords(tokens)
            if pattern is not None:
                break
        if pattern is not None:
            logger.info("Target %s inferred from keyword '%s'", pattern.target, pattern.keyword)
            return Inference(
                target_identifier=pattern.target,
                source=f"keyword '{pattern.keyword}'",
                package_version=version,
            )

        logger.warning("No target pattern matched %s", repository_name or "package")
        return Inference(
            target_identifier=UNKNOWN_TARGET,
            source="none",
            package_version=version,
            diagnostics=[Diagnostic.warning(
                "target identifier could not be inferred; set it with --target"
            )],
        )

    def _explicit_hint(self, by_path: Dict[str, SourceFile], package: Dict[str, Any]):
        for path in (".cargo/config.toml", ".cargo/config"):
            build = _load_toml(by_path.get(path)).get("build")
            if isinstance(build, dict):
                target = build.get("target")
                if isinstance(target, list) and target:
                    target = target[0]
                if isinstance(target, str) and target:
                    return target, path

        toolchain = _load_toml(by_path.get("rust-toolchain.toml") or by_path.get("rust-toolchain")).get("toolchain")
        if isinstance(toolchain, dict):
            targets = toolchain.get("targets")
            if isinstance(targets, list) and targets and isinstance(targets[0], str):
                return targets[0], "rust-toolchain.toml"

        docs: Any = package
        for key in ("metadata", "docs", "rs"):
            docs = docs.get(key) if isinstance(docs, dict) else None
        if isinstance(docs, dict):
            target = docs.get("default-target")
            if not target and isinstance(docs.get("targets"), list) and docs["targets"]:
                target = docs["targets"][0]
            if isinstance(target, str) and target:
                return target, "docs.rs metadata"
        return None

    def _token_tiers(self, files: Iterable[SourceFile], repository_name: str) -> List[List[str]]:
        """Names first (repository, packages, keywords), then descriptions and dependencies"""
        names: List[str] = []
        others: List[str] = []
        if repository_name:
            names.append(repository_name.lower())
        for source in files:
            if source.path.rsplit("/", 1)[-1] != "Cargo.toml":
                continue
            manifest = _load_toml(source)
            package = manifest.get("package")
            if isinstance(package, dict):
                if isinstance(package.get("name"), str):
                    names.append(package["name"].lower())
                if isinstance(package.get("description"), str):
                    others.append(package["description"].lower())
                keywords = package.get("keywords")
                for keyword in keywords if isinstance(keywords, list) else []:
                    if isinstance(keyword, str):
                        names.append(keyword.lower())
            for table in ("dependencies", "dev-dependencies"):
                if isinstance(manifest.get(table), dict):
                    others.extend(name.lower() for name in manifest[table])
        return [names, others]

    def match_keywords(self, tokens: Sequence[str]) -> Optional[TargetPattern]:
        """Longest matching keyword wins; ties go to the earlier table row."""
        best: Optional[TargetPattern] = None
        for pattern in self.patterns:
            needle = re.compile(rf"(?<![a-z0-9]){re.escape(pattern.keyword)}")
            if any(needle.search(token) for token in tokens):
                if best is None or len(pattern.keyword) > len(best.keyword):
                    best = pattern
        return best
