"""Context managers for crash-safe configuration writes."""

import fcntl
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, Optional


TEMP_SUFFIX = ".tmp"


def temp_prefix(target: Path) -> str:
    """Prefix of temporary files written next to target (used by vacuum)."""
    return f".{target.name}."


class AtomicFileWriter:
    """Write-to-temporary-then-rename file replacement.

    The temporary file lives in the target's directory so os.replace is a
    same-filesystem rename. On any exception the temporary file is removed and
    the target is left untouched.
    """

    def __init__(self, target: Path, encoding: str = "utf-8"):
        self.target = target
        self.encoding = encoding
        self.temp_path: Optional[Path] = None
        self._file = None

    def __enter__(self):
        self.target.parent.mkdir(parents=True, exist_ok=True)
        fd, name = tempfile.mkstemp(
            prefix=temp_prefix(self.target),
            suffix=TEMP_SUFFIX,
            dir=self.target.parent
        )
        self.temp_path = Path(name)
        self._file = os.fdopen(fd, "w", encoding=self.encoding)
        return self._file

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            if exc_type is None:
                try:
                    self._file.flush()
                    os.fsync(self._file.fileno())
                finally:
                    self._file.close()
                os.replace(self.temp_path, self.target)
                self._fsync_directory()
            else:
                self._file.close()
        finally:
            self._cleanup()
        return False

    def _cleanup(self):
        """Remove temporary file (idempotent)."""
        if self.temp_path and self.temp_path.exists():
            self.temp_path.unlink()
        self.temp_path = None

    def _fsync_directory(self):
        dir_fd = os.open(self.target.parent, os.O_RDONLY)
        try:
            os.fsync(dir_fd)
        finally:
            os.close(dir_fd)


class ExclusiveFileLock:
    """Single-writer lock around a configuration file.

    Serializes writers across threads (per-path threading.Lock) and across
    processes (fcntl.flock on a '.lock' sidecar file). Readers do not take it.
    """

    _thread_locks: Dict[str, threading.Lock] = {}
    _registry_lock = threading.Lock()

    def __init__(self, target: Path):
        self.target = target
        self.lock_path = target.with_name(f".{target.name}.lock")
        self._fd: Optional[int] = None
        with self._registry_lock:
            key = str(self.lock_path.resolve())
            self._thread_lock = self._thread_locks.setdefault(key, threading.Lock())

    def __enter__(self) -> "ExclusiveFileLock":
        self._thread_lock.acquire()
        try:
            self.lock_path.parent.mkdir(parents=True, exist_ok=True)
            self._fd = os.open(self.lock_path, os.O_RDWR | os.O_CREAT, 0o644)
            fcntl.flock(self._fd, fcntl.LOCK_EX)
        except BaseException:
            self._release_fd()
            self._thread_lock.release()
            raise
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            if self._fd is not None:
                fcntl.flock(self._fd, fcntl.LOCK_UN)
        finally:
            self._release_fd()
            self._thread_lock.release()
        return False

    def _release_fd(self):
        if self._fd is not None:
            os.close(self._fd)
            self._fd = None
