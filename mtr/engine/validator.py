"""Validator: orchestrates fetch, parse, classify, infer and synchronize."""

import asyncio
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

from mtr.analysis.classifier import CompatibilityClassifier
from mtr.analysis.parser import InterfaceParser
from mtr.analysis.target_inference import TargetInferencer
from mtr.engine.synchronizer import SyncResult, WorkspaceSynchronizer
from mtr.exceptions import DuplicatePlatformError, NetworkError, NotFoundError
from mtr.fetch.fetcher import SourceFetcher
from mtr.fetch.sources import SourceBackend, parse_github_url, repository_name
from mtr.models.glue import (
    Diagnostic,
    GlueConfig,
    GlueSettings,
    Platform,
    PlatformStatus,
    SourceReference,
)
from mtr.models.report import PlatformSummary, ReportEntry, ValidationReport
from mtr.registry.interfaces import InterfaceRegistry
from mtr.store.config_store import CONFIG_FILENAME, ConfigStore, effective_settings

logger = logging.getLogger(__name__)

# Statuses the pipeline may advance; Registered keeps its status on re-analysis
ADVANCEABLE = (PlatformStatus.PROPOSED, PlatformStatus.ANALYZED, PlatformStatus.VALIDATED)


class Validator:
    """Run the analysis pipeline for one or all platforms.

    Every run works on deep copies of the last committed snapshot. The only
    persisted mutations are init (add), remove and a zero-error apply.
    """

    def __init__(
        self,
        project_root: Path = Path("."),
        store: Optional[ConfigStore] = None,
        backend: Optional[SourceBackend] = None,
        registry: Optional[InterfaceRegistry] = None,
        inferencer: Optional[TargetInferencer] = None,
    ):
        """Initialize validator

        Args:
            project_root: Workspace root containing glue.yaml and Cargo.toml
            store: Config store (default: <project_root>/glue.yaml)
            backend: Source backend override, chosen per URL when None
            registry: Interface registry override, loaded from settings when None
            inferencer: Target inferencer override
        """
        self.project_root = Path(project_root)
        self.store = store or ConfigStore(self.project_root / CONFIG_FILENAME)
        self.backend = backend
        self._registry = registry
        self.inferencer = inferencer or TargetInferencer()
        self.parser = InterfaceParser()
        self.synchronizer = WorkspaceSynchronizer(self.project_root)

    def registry_for(self, settings: GlueSettings) -> InterfaceRegistry:
        if self._registry is None:
            overlay = None
            if settings.registry_path:
                overlay = Path(settings.registry_path)
                if not overlay.is_absolute():
                    overlay = self.project_root / overlay
            self._registry = InterfaceRegistry(overlay_path=overlay)
        return self._registry

    def _source_url(self, platform: Platform) -> str:
        """Repository location with relative paths taken from the project root"""
        url = platform.source_reference.repository_url
        if "://" in url or url.startswith(("/", "~", "git@")) or parse_github_url(url) is not None:
            return url
        return str((self.project_root / url).absolute())

    async def analyze(self, platform: Platform, settings: GlueSettings) -> Platform:
        """Fetch, parse, classify and (if needed) infer target for one platform

        Args:
            platform: Working copy to analyze; never a committed record
            settings: Effective settings

        Returns:
            New platform record with fresh diagnostics

        Raises:
            NetworkError: If the package yields zero files after retries
        """
        reference = platform.source_reference
        fetcher = SourceFetcher.from_settings(settings, backend=self.backend)
        fetched = await fetcher.fetch(self._source_url(platform), reference.ref)

        # Everything below is synchronous over already fetched text
        diagnostics: List[Diagnostic] = list(fetched.diagnostics())
        repo_name = repository_name(reference.repository_url)

        parsed = self.parser.parse(fetched.files, repository_name=repo_name)
        diagnostics.extend(parsed.diagnostics)

        classification = CompatibilityClassifier(self.registry_for(settings)).classify(parsed.records)
        diagnostics.extend(classification.diagnostics)

        update = {"interfaces": classification.records}

        if not platform.target_identifier:
            inference = self.inferencer.infer(fetched.files, repository_name=repo_name)
            update["target_identifier"] = inference.target_identifier
            diagnostics.extend(inference.diagnostics)
            if not platform.package_version and inference.package_version:
                update["package_version"] = inference.package_version
        elif not platform.package_version:
            version = self.inferencer.infer(fetched.files, repository_name=repo_name).package_version
            if version:
                update["package_version"] = version

        if not platform.hal_crate and "" in parsed.crates:
            update["hal_crate"] = parsed.crates[""].replace("_", "-")

        if parsed.parsed_files:
            if platform.status in ADVANCEABLE:
                update["status"] = PlatformStatus.ANALYZED
        else:
            diagnostics.append(Diagnostic.error(
                f"no Rust library sources could be parsed from {reference.repository_url}"
            ))
            if platform.status in ADVANCEABLE:
                update["status"] = PlatformStatus.PROPOSED

        update["diagnostics"] = diagnostics
        analyzed = platform.model_copy(update=update, deep=True)
        logger.info(
            "Analyzed platform '%s': %d interface(s), %d warning(s), %d error(s)",
            platform.name, len(analyzed.interfaces), analyzed.warning_count, analyzed.error_count
        )
        return analyzed

    async def init_platform(
        self,
        name: str,
        repository_url: str,
        ref: str = "HEAD",
        target_identifier: Optional[str] = None,
        hal_crate: Optional[str] = None,
        features: Sequence[str] = (),
    ) -> ValidationReport:
        """Analyze a new platform and add it as Proposed/Analyzed

        Raises:
            DuplicatePlatformError: If an active platform has the same name
            NetworkError: If the package cannot be fetched (nothing persisted)
        """
        config = self.store.load()
        existing = config.platforms.get(name)
        if existing is not None and existing.status != PlatformStatus.REMOVED:
            raise DuplicatePlatformError(name)

        proposed = Platform(
            name=name,
            target_identifier=target_identifier or None,
            source_reference=SourceReference(repository_url=repository_url, ref=ref),
            hal_crate=hal_crate,
            features=list(features),
        )
        analyzed = await self.analyze(proposed, effective_settings(config.settings))
        self.store.add(analyzed)

        return ValidationReport(
            entries=[ReportEntry(platform=name, diagnostic=d) for d in analyzed.diagnostics],
            platforms=[analyzed],
        )

    def _select(self, config: GlueConfig, names: Optional[Iterable[str]]) -> List[Platform]:
        active = config.active_platforms()
        if names is None:
            return active
        selected = []
        for name in names:
            platform = config.platforms.get(name)
            if platform is None or platform.status == PlatformStatus.REMOVED:
                raise NotFoundError(name, [p.name for p in active])
            selected.append(platform)
        return selected

    async def _run(self, config: GlueConfig, names: Optional[Iterable[str]]) -> ValidationReport:
        settings = effective_settings(config.settings)
        selected = self._select(config, names)

        results = await asyncio.gather(*(
            self._analyze_isolated(platform.model_copy(deep=True), settings)
            for platform in selected
        ))
        by_name = {platform.name: platform for platform, _ in results}
        unreachable = [platform.name for platform, reachable in results if not reachable]
        final = [by_name.get(name, platform) for name, platform in config.platforms.items()]

        sync = self.synchronizer.synchronize(final)
        final = self._advance(final, by_name, sync)

        entries: List[ReportEntry] = []
        for platform in final:
            if platform.name in by_name:
                entries.extend(ReportEntry(platform=platform.name, diagnostic=d) for d in platform.diagnostics)
        entries.extend(ReportEntry(platform=None, diagnostic=d) for d in sync.diagnostics)

        return ValidationReport(
            entries=entries,
            platforms=[p for p in final if p.name in by_name],
            delta=sync.delta,
            unreachable=unreachable,
        )

    async def _analyze_isolated(self, platform: Platform, settings: GlueSettings) -> Tuple[Platform, bool]:
        """Analyze one platform of a multi-platform run

        A fetch failure keeps the platform's committed state and reports an
        Error for it, so sibling platforms still finish.

        Returns:
            (platform, reachable)
        """
        try:
            return await self.analyze(platform, settings), True
        except NetworkError as e:
            logger.warning("Analysis of platform '%s' aborted: %s", platform.name, e.message)
            return platform.model_copy(update={
                "diagnostics": [Diagnostic.error(f"source unavailable: {e.message}")],
            }), False

    @staticmethod
    def _advance(platforms: List[Platform], analyzed: dict, sync: SyncResult) -> List[Platform]:
        """Analyzed -> Validated for platforms without Errors when the workspace is consistent"""
        result = []
        for platform in platforms:
            if (
                platform.name in analyzed
                and platform.status == PlatformStatus.ANALYZED
                and platform.error_count == 0
                and not sync.has_errors
            ):
                platform = platform.model_copy(update={"status": PlatformStatus.VALIDATED})
            result.append(platform)
        return result

    async def validate(self, names: Optional[Iterable[str]] = None) -> ValidationReport:
        """Dry run: report diagnostics and final states, persist nothing"""
        return await self._run(self.store.load(), names)

    async def apply(self, names: Optional[Iterable[str]] = None) -> ValidationReport:
        """Validate and, only with zero Errors, register eligible platforms

        Returns:
            Report with applied=True and the post-apply delta on success, or
            the unchanged dry-run report with applied=False when blocked
        """
        report = await self._run(self.store.load(), names)
        if report.has_errors:
            logger.warning("Apply refused: report contains %d error(s)", report.error_count)
            return report

        results = {
            platform.name: self._register(platform)
            for platform in report.platforms
        }
        on_disk = self.synchronizer.actual_units()

        def _merge(current: GlueConfig) -> GlueConfig:
            platforms = {}
            for name, platform in current.platforms.items():
                if platform.status == PlatformStatus.REMOVED:
                    if {f"hal-{name}", f"app-{name}"} & on_disk:
                        platforms[name] = platform
                    else:
                        logger.info("Purging tombstone of platform '%s'", name)
                    continue
                # Tombstones created since the run started stay removed
                platforms[name] = results.get(name, platform)
            return current.model_copy(update={"platforms": platforms})

        committed = self.store.update(_merge)
        applied = [committed.platforms[name] for name in results if name in committed.platforms]
        post = self.synchronizer.synchronize(list(committed.platforms.values()))
        logger.info("Applied configuration for %d platform(s)", len(applied))

        return report.model_copy(update={"platforms": applied, "delta": post.delta, "applied": True})

    @staticmethod
    def _register(platform: Platform) -> Platform:
        if platform.status == PlatformStatus.VALIDATED and platform.target_identifier:
            return platform.model_copy(update={"status": PlatformStatus.REGISTERED})
        return platform

    def remove(self, name: str) -> Platform:
        """Tombstone a platform

        Raises:
            NotFoundError: If the platform is unknown or already removed
        """
        config = self.store.remove(name)
        return config.platforms[name]

    def list_platforms(self, include_removed: bool = False) -> List[PlatformSummary]:
        config = self.store.load()
        platforms = config.platforms.values() if include_removed else config.active_platforms()
        return [
            PlatformSummary(
                name=platform.name,
                status=platform.status,
                target_identifier=platform.target_identifier,
                mockable_interfaces=platform.mockable_interfaces,
                warning_count=platform.warning_count,
            )
            for platform in platforms
        ]
