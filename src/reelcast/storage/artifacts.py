"""Media download and artifact publishing."""

import logging
import shutil
from pathlib import Path
from urllib.parse import urlparse

import httpx

from reelcast.config import Settings, get_settings
from reelcast.models.errors import ProviderRejected, ProviderUnavailable

logger = logging.getLogger(__name__)


class ArtifactStore:
    """Publishes finished files under a directory served at ``base_url``."""

    def __init__(self, base_dir: Path | None = None, base_url: str | None = None):
        settings = get_settings()
        self.base_dir = base_dir or settings.artifact_dir
        self.base_url = (base_url or settings.artifact_base_url).rstrip("/")
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def upload(self, local_path: Path, key: str) -> str:
        """Copy ``local_path`` to ``key`` and return its public URL."""
        target = self.base_dir / key
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(local_path, target)
        logger.info("Published %s (%d bytes)", key, target.stat().st_size)
        return f"{self.base_url}/{key}"

    def discard(self, url: str) -> bool:
        """Unpublish one of our own artifacts; other URLs are left alone."""
        path = self.local_path_for(url)
        if path is None:
            return False
        path.unlink(missing_ok=True)
        logger.info("Discarded %s", url)
        return True

    def local_path_for(self, url: str) -> Path | None:
        """Map one of our own artifact URLs back to its file, if it is ours."""
        if url.startswith(self.base_url + "/"):
            path = self.base_dir / url[len(self.base_url) + 1 :]
            return path if path.exists() else None
        return None


class MediaDownloader:
    """Fetches source media into a working directory."""

    def __init__(
        self,
        store: ArtifactStore | None = None,
        settings: Settings | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.transport = transport

    def download(self, url: str, dest: Path) -> Path:
        dest.parent.mkdir(parents=True, exist_ok=True)

        local = self._local_source(url)
        if local is not None:
            shutil.copyfile(local, dest)
            return dest

        try:
            with httpx.Client(
                timeout=httpx.Timeout(self.settings.http_timeout_seconds * 4, connect=10.0),
                follow_redirects=True,
                transport=self.transport,
            ) as client:
                with client.stream("GET", url) as response:
                    if response.status_code >= 500:
                        raise ProviderUnavailable(
                            f"Download failed with HTTP {response.status_code}", provider="download"
                        )
                    if not response.is_success:
                        raise ProviderRejected(
                            f"Download failed with HTTP {response.status_code}",
                            status_code=response.status_code,
                            provider="download",
                        )
                    with open(dest, "wb") as f:
                        for chunk in response.iter_bytes():
                            f.write(chunk)
        except httpx.TransportError as e:
            raise ProviderUnavailable(f"Download failed: {e}", provider="download")

        logger.info("Downloaded %s -> %s", url, dest)
        return dest

    def _local_source(self, url: str) -> Path | None:
        if self.store is not None:
            own = self.store.local_path_for(url)
            if own is not None:
                return own
        parsed = urlparse(url)
        if parsed.scheme == "file":
            return Path(parsed.path)
        if parsed.scheme == "" and Path(url).exists():
            return Path(url)
        return None
