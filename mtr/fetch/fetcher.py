"""Concurrent, bounded, retrying source fetcher."""

import asyncio
import logging
import os
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Union

from mtr.exceptions import NetworkError
from mtr.fetch.sources import (
    SourceBackend,
    SourceReadError,
    SourceUnavailableError,
    backend_for,
)
from mtr.models.glue import Diagnostic, GlueSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceFile:
    """Fetched file content"""
    path: str
    data: bytes


@dataclass(frozen=True)
class FetchFailure:
    """Per-file fetch failure (recorded, never fatal on its own)"""
    path: str
    reason: str


@dataclass
class FetchResult:
    """Files of one package, sorted by path"""
    repository_url: str
    ref: str
    files: List[SourceFile] = field(default_factory=list)
    failures: List[FetchFailure] = field(default_factory=list)
    attempts: int = 1
    truncated: bool = False

    def diagnostics(self) -> List[Diagnostic]:
        diagnostics = [
            Diagnostic.warning(f"file fetch failed: {failure.path} ({failure.reason})")
            for failure in self.failures
        ]
        if self.truncated:
            diagnostics.append(Diagnostic.warning(
                f"source tree truncated to {len(self.files) + len(self.failures)} files"
            ))
        return diagnostics


class SourceFetcher:
    """Fetch a package's source tree with a fixed concurrency limit

    File reads run as asyncio tasks behind a semaphore. Sibling failures are
    isolated; only an attempt yielding zero files is retried, with exponential
    backoff, and NetworkError raised when attempts run out.
    """

    def __init__(
        self,
        backend: Optional[SourceBackend] = None,
        concurrency: int = 8,
        attempts: int = 3,
        backoff_seconds: float = 0.5,
        max_files: int = 2000,
        token: Optional[str] = None,
        timeout_seconds: float = 30.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize fetcher

        Args:
            backend: Source backend; chosen per URL when None
            concurrency: Maximum in-flight file reads
            attempts: Attempts before a zero-file fetch is fatal
            backoff_seconds: Delay before the second attempt, doubled each time
            max_files: Cap on files read per package
            token: GitHub token for API access
            timeout_seconds: Per-request timeout for network backends
            sleep: Awaitable sleep used between attempts
        """
        self.backend = backend
        self.concurrency = concurrency
        self.attempts = attempts
        self.backoff_seconds = backoff_seconds
        self.max_files = max_files
        self.token = token
        self.timeout_seconds = timeout_seconds
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: GlueSettings, backend: Optional[SourceBackend] = None) -> "SourceFetcher":
        return cls(
            backend=backend,
            concurrency=settings.fetch_concurrency,
            attempts=settings.fetch_attempts,
            backoff_seconds=settings.fetch_backoff_seconds,
            max_files=settings.max_files,
            token=os.environ.get("MTR_GITHUB_TOKEN") or os.environ.get("GITHUB_TOKEN"),
            timeout_seconds=settings.request_timeout_seconds,
        )

    async def fetch(self, repository_url: str, ref: str) -> FetchResult:
        """Fetch all relevant files reachable from ref

        Returns:
            FetchResult with files and failures sorted by path

        Raises:
            NetworkError: If no file could be fetched after all attempts
        """
        if self.backend is not None:
            return await self._fetch_with_retry(self.backend, repository_url, ref)

        async with backend_for(repository_url, self.token, self.timeout_seconds) as backend:
            return await self._fetch_with_retry(backend, repository_url, ref)

    async def _fetch_with_retry(self, backend: SourceBackend, repository_url: str, ref: str) -> FetchResult:
        last_failures: List[str] = []

        for attempt in range(1, self.attempts + 1):
            try:
                result = await self._fetch_once(backend, repository_url, ref)
            except SourceUnavailableError as e:
                last_failures = [str(e)]
                logger.warning("Fetch attempt %d/%d failed: %s", attempt, self.attempts, e)
            else:
                result.attempts = attempt
                if result.files:
                    logger.info(
                        "Fetched %d file(s) from %s@%s (%d failed)",
                        len(result.files), repository_url, ref, len(result.failures)
                    )
                    return result
                last_failures = [f"{f.path}: {f.reason}" for f in result.failures] or [
                    "no Rust sources or manifests found"
                ]
                logger.warning("Fetch attempt %d/%d yielded zero files", attempt, self.attempts)

            if attempt < self.attempts:
                delay = self.backoff_seconds * (2 ** (attempt - 1))
                logger.debug("Retrying fetch of %s in %.2fs", repository_url, delay)
                await self._sleep(delay)

        raise NetworkError(repository_url, ref, self.attempts, last_failures)

    async def _fetch_once(self, backend: SourceBackend, repository_url: str, ref: str) -> FetchResult:
        paths = sorted(set(await backend.list_files(repository_url, ref)))
        truncated = len(paths) > self.max_files
        if truncated:
            logger.warning("Limiting %s to %d of %d files", repository_url, self.max_files, len(paths))
            paths = paths[:self.max_files]

        semaphore = asyncio.Semaphore(self.concurrency)
        outcomes = await asyncio.gather(*(
            self._fetch_file(semaphore, backend, repository_url, ref, path)
            for path in paths
        ))

        files = sorted((o for o in outcomes if isinstance(o, SourceFile)), key=lambda f: f.path)
        failures = sorted((o for o in outcomes if isinstance(o, FetchFailure)), key=lambda f: f.path)
        return FetchResult(
            repository_url=repository_url,
            ref=ref,
            files=files,
            failures=failures,
            truncated=truncated,
        )

    async def _fetch_file(
        self,
        semaphore: asyncio.Semaphore,
        backend: SourceBackend,
        repository_url: str,
        ref: str,
        path: str
    ) -> Union[SourceFile, FetchFailure]:
        async with semaphore:
            try:
                data = await backend.read_file(repository_url, ref, path)
            except SourceReadError as e:
                logger.debug("Failed to fetch %s: %s", path, e)
                return FetchFailure(path=path, reason=str(e))
        logger.debug("Fetched %s (%d bytes)", path, len(data))
        return SourceFile(path=path, data=data)
