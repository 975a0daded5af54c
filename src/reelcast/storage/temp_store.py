"""Temporary working directories for pipeline runs."""

import logging
import shutil
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from reelcast.config import get_settings

logger = logging.getLogger(__name__)


class TempFileManager:
    """Hands out one private directory per run and removes it afterwards."""

    def __init__(self, base_dir: Path | None = None):
        self.base_dir = base_dir or get_settings().temp_dir
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def create_run_dir(self, prefix: str = "run") -> Path:
        run_dir = self.base_dir / f"{prefix}_{uuid.uuid4().hex[:12]}"
        run_dir.mkdir(parents=True, exist_ok=False)
        return run_dir

    def cleanup(self, run_dir: Path) -> None:
        if run_dir.exists():
            shutil.rmtree(run_dir, ignore_errors=True)
            logger.info("Cleaned up temp files in %s", run_dir)

    @contextmanager
    def run_dir(self, prefix: str = "run") -> Iterator[Path]:
        """Yield a fresh directory that is removed on every exit path."""
        path = self.create_run_dir(prefix)
        try:
            yield path
        finally:
            self.cleanup(path)

    def cleanup_expired(self, ttl_seconds: int | None = None) -> int:
        """Remove run directories left behind by crashed workers."""
        ttl = ttl_seconds if ttl_seconds is not None else get_settings().temp_file_ttl_seconds
        cutoff = time.time() - ttl
        cleaned = 0
        for entry in self.base_dir.iterdir():
            if entry.is_dir() and entry.stat().st_mtime < cutoff:
                shutil.rmtree(entry, ignore_errors=True)
                cleaned += 1
        return cleaned
