"""Source backends: where a HAL package's files come from."""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import List, Optional, Tuple
from urllib.parse import urlparse

import aiohttp

from mtr.exceptions import MTRError

logger = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"
GITHUB_RAW = "https://raw.githubusercontent.com"

# Files the analysis pipeline reads; everything else in the tree is ignored
MANIFEST_NAMES = {"Cargo.toml", "rust-toolchain.toml", "rust-toolchain"}
SKIPPED_DIRS = {"target", ".git", "node_modules"}


class SourceUnavailableError(Exception):
    """Raised when a backend cannot enumerate the source tree"""
    pass


class SourceReadError(Exception):
    """Raised when a backend cannot read one file"""
    pass


def is_relevant_path(path: str) -> bool:
    """Check if a tree path is needed by the analysis pipeline"""
    parts = PurePosixPath(path).parts
    if not parts or any(part in SKIPPED_DIRS for part in parts[:-1]):
        return False

    name = parts[-1]
    if name.endswith(".rs") or name in MANIFEST_NAMES:
        return True
    return len(parts) >= 2 and parts[-2] == ".cargo" and name in ("config.toml", "config")


def parse_github_url(repository_url: str) -> Optional[Tuple[str, str]]:
    """Extract (owner, repo) from a GitHub URL, or None for other hosts"""
    url = repository_url.strip().rstrip("/")
    match = re.match(r"^git@github\.com:([^/]+)/([^/]+?)(\.git)?$", url)
    if not match:
        match = re.match(r"^(?:https?://)?(?:www\.)?github\.com/([^/]+)/([^/]+?)(\.git)?$", url)
    if not match:
        return None
    return match.group(1), match.group(2)


def repository_name(repository_url: str) -> str:
    """Last path segment of a repository URL without .git"""
    url = repository_url.strip().rstrip("/")
    if url.startswith("file://"):
        url = urlparse(url).path.rstrip("/")
    name = re.split(r"[/:]", url)[-1]
    return name[:-4] if name.endswith(".git") else name


class SourceBackend(ABC):
    """Enumerates and reads files of a package at a ref"""

    @abstractmethod
    async def list_files(self, repository_url: str, ref: str) -> List[str]:
        """List relevant file paths reachable from ref

        Raises:
            SourceUnavailableError: If the tree cannot be enumerated
        """
        pass

    @abstractmethod
    async def read_file(self, repository_url: str, ref: str, path: str) -> bytes:
        """Read one file

        Raises:
            SourceReadError: If the file cannot be read
        """
        pass

    async def close(self) -> None:
        pass

    async def __aenter__(self) -> "SourceBackend":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False


class GitHubSource(SourceBackend):
    """GitHub REST API tree listing plus raw.githubusercontent.com downloads"""

    def __init__(self, token: Optional[str] = None, timeout_seconds: float = 30.0):
        self.token = token
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session: Optional[aiohttp.ClientSession] = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            headers = {"User-Agent": "mtr-glue"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._session = aiohttp.ClientSession(headers=headers, timeout=self.timeout)
        return self._session

    def _owner_repo(self, repository_url: str) -> Tuple[str, str]:
        parsed = parse_github_url(repository_url)
        if parsed is None:
            raise SourceUnavailableError(f"Not a GitHub repository URL: {repository_url}")
        return parsed

    async def list_files(self, repository_url: str, ref: str) -> List[str]:
        owner, repo = self._owner_repo(repository_url)
        url = f"{GITHUB_API}/repos/{owner}/{repo}/git/trees/{ref}?recursive=1"

        try:
            async with self._get_session().get(
                url, headers={"Accept": "application/vnd.github+json"}
            ) as response:
                response.raise_for_status()
                payload = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SourceUnavailableError(f"Cannot list {owner}/{repo}@{ref}: {e}") from e

        if payload.get("truncated"):
            logger.warning("Tree listing for %s/%s@%s was truncated by the API", owner, repo, ref)

        return [
            entry["path"]
            for entry in payload.get("tree", [])
            if entry.get("type") == "blob" and is_relevant_path(entry.get("path", ""))
        ]

    async def read_file(self, repository_url: str, ref: str, path: str) -> bytes:
        owner, repo = self._owner_repo(repository_url)
        url = f"{GITHUB_RAW}/{owner}/{repo}/{ref}/{path}"

        try:
            async with self._get_session().get(url) as response:
                response.raise_for_status()
                return await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SourceReadError(f"{type(e).__name__}: {e}") from e

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()


class LocalSource(SourceBackend):
    """Package checked out on the local filesystem (ref is ignored)"""

    @staticmethod
    def root_for(repository_url: str) -> Path:
        if repository_url.startswith("file://"):
            return Path(urlparse(repository_url).path)
        return Path(repository_url).expanduser()

    async def list_files(self, repository_url: str, ref: str) -> List[str]:
        root = self.root_for(repository_url)
        if not root.is_dir():
            raise SourceUnavailableError(f"Directory not found: {root}")

        def _walk() -> List[str]:
            return [
                path.relative_to(root).as_posix()
                for path in root.rglob("*")
                if path.is_file() and is_relevant_path(path.relative_to(root).as_posix())
            ]

        return await asyncio.to_thread(_walk)

    async def read_file(self, repository_url: str, ref: str, path: str) -> bytes:
        file_path = self.root_for(repository_url) / path
        try:
            return await asyncio.to_thread(file_path.read_bytes)
        except OSError as e:
            raise SourceReadError(str(e)) from e


def is_local_reference(repository_url: str) -> bool:
    if repository_url.startswith(("file://", "/", "./", "../", "~")):
        return True
    return parse_github_url(repository_url) is None and LocalSource.root_for(repository_url).is_dir()


def backend_for(repository_url: str, token: Optional[str] = None, timeout_seconds: float = 30.0) -> SourceBackend:
    """Pick the backend that can serve repository_url

    Raises:
        MTRError: If no backend supports the URL
    """
    if is_local_reference(repository_url):
        return LocalSource()
    if parse_github_url(repository_url) is not None:
        return GitHubSource(token=token, timeout_seconds=timeout_seconds)
    raise MTRError(
        f"Unsupported repository location: {repository_url}",
        "Use a https://github.com/<owner>/<repo> URL, a file:// URL or a local directory"
    )
