"""Coordination store: the shared directory of Markdown files phases hand state through.

All access to the coordination directory goes through ``CoordinationStore`` so
that every read, write and append happens in one place. Documents are
addressed by their path relative to the coordination directory
(e.g. ``"BUILD_LOG.md"`` or ``"test-results/bugs-found.md"``).
"""

import contextlib
import fcntl
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

from cli_agent_fleet.constants import (
    BUGS_FILE,
    COORDINATION_DIR_NAME,
    HISTORY_LOG_FILE,
    LOCKS_DIR,
    SESSION_LOG_DIR,
    TEST_RESULTS_DIR,
)

logger = logging.getLogger(__name__)

# Process-wide thread locks, keyed by lock file path. fcntl.flock excludes
# other processes; the thread lock excludes other threads of this process.
_thread_locks: Dict[str, threading.Lock] = {}
_thread_locks_guard = threading.Lock()


def _thread_lock_for(path: Path) -> threading.Lock:
    key = str(path.resolve())
    with _thread_locks_guard:
        lock = _thread_locks.get(key)
        if lock is None:
            lock = threading.Lock()
            _thread_locks[key] = lock
        return lock


class CoordinationStore:
    """Read-document / write-document / append-line access to ``_coordination/``."""

    def __init__(self, project_dir: Path, dir_name: str = COORDINATION_DIR_NAME):
        self.project_dir = Path(project_dir)
        self.root = self.project_dir / dir_name

    # ── layout ──────────────────────────────────────────────────────────

    def ensure_layout(self) -> None:
        """Create the coordination directory and its fixed subdirectories."""
        for sub in (TEST_RESULTS_DIR, LOCKS_DIR, SESSION_LOG_DIR):
            (self.root / sub).mkdir(parents=True, exist_ok=True)

    def init_background_files(self) -> None:
        """Create the files the background tester appends to."""
        self.ensure_layout()
        for name in (BUGS_FILE, HISTORY_LOG_FILE):
            self.path(name).touch(exist_ok=True)

    def path(self, name: str) -> Path:
        return self.root / name

    def relative(self, name: str) -> str:
        """Project-relative path of a document, as phases are told to use it."""
        return f"{self.root.name}/{name}"

    # ── documents ───────────────────────────────────────────────────────

    def exists(self, name: str) -> bool:
        return self.path(name).is_file()

    def read_document(self, name: str) -> Optional[str]:
        """Return the document text, or None if it does not exist."""
        p = self.path(name)
        try:
            return p.read_text(encoding="utf-8", errors="replace")
        except FileNotFoundError:
            return None

    def head(self, name: str, lines: int) -> Optional[str]:
        text = self.read_document(name)
        if text is None:
            return None
        return "\n".join(text.splitlines()[:lines])

    def write_document(self, name: str, content: str) -> None:
        """Replace a document atomically (temp file + rename)."""
        p = self.path(name)
        p.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=p.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.replace(tmp, p)
        except OSError:
            os.unlink(tmp)
            raise
        logger.debug(f"Wrote {name} ({len(content)} bytes)")

    def append_line(self, name: str, line: str) -> None:
        """Append one line; the document is created if missing."""
        p = self.path(name)
        p.parent.mkdir(parents=True, exist_ok=True)
        with open(p, "a", encoding="utf-8") as f:
            f.write(line.rstrip("\n") + "\n")

    def mtime(self, name: str) -> Optional[int]:
        """Modification time in nanoseconds, or None if the document is missing."""
        try:
            return self.path(name).stat().st_mtime_ns
        except FileNotFoundError:
            return None

    def signature(self, name: str) -> Optional[Tuple[int, int, int]]:
        """``(inode, mtime_ns, size)`` of a document, or None if it is missing.

        Any rewrite changes it: ``write_document`` always lands a new inode,
        and in-place edits move the mtime or size.
        """
        try:
            st = self.path(name).stat()
        except FileNotFoundError:
            return None
        return (st.st_ino, st.st_mtime_ns, st.st_size)

    def list_documents(self) -> List[Path]:
        """Top-level entries of the coordination directory, sorted by name."""
        if not self.root.is_dir():
            return []
        return sorted(self.root.iterdir(), key=lambda p: p.name)

    # ── locking ─────────────────────────────────────────────────────────

    @contextlib.contextmanager
    def lock(self, resource: str) -> Iterator[None]:
        """Hold an exclusive lock on a named resource.

        Excludes other threads of this process and other processes using the
        same coordination directory.
        """
        lock_path = self.root / LOCKS_DIR / f"{resource}.lock"
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        lock_path.touch(exist_ok=True)
        thread_lock = _thread_lock_for(lock_path)
        with thread_lock:
            with lock_path.open("r+", encoding="utf-8") as handle:
                logger.debug(f"Waiting for lock: {resource}")
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
                try:
                    logger.debug(f"Acquired lock: {resource}")
                    yield
                finally:
                    fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
                    logger.debug(f"Released lock: {resource}")
