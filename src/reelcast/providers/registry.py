"""Named provider adapters built from settings."""

import logging

from reelcast.config import Settings, get_settings
from reelcast.models.errors import ValidationError
from reelcast.models.video import GenerationMode
from reelcast.providers.base import BaseProvider
from reelcast.providers.demo import DemoProvider
from reelcast.providers.heygen import HeyGenProvider
from reelcast.providers.kling import KlingProvider

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Resolves the adapter responsible for a generation job."""

    def __init__(self, providers: dict[str, BaseProvider], default: str = "kling"):
        self._providers = dict(providers)
        self.default = default

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "ProviderRegistry":
        settings = settings or get_settings()
        providers: dict[str, BaseProvider] = {
            "kling": KlingProvider(
                base_url=settings.kling_base_url,
                api_key=settings.kling_api_key,
                default_version=settings.kling_default_version,
                timeout=settings.http_timeout_seconds,
            ),
            "heygen": HeyGenProvider(
                base_url=settings.heygen_base_url,
                api_key=settings.heygen_api_key,
                timeout=settings.http_timeout_seconds,
            ),
            "demo": DemoProvider(),
        }
        return cls(providers, default=settings.default_provider)

    def get(self, name: str) -> BaseProvider:
        if name not in self._providers:
            raise ValidationError(
                f"Unknown provider '{name}'", details={"available": sorted(self._providers)}
            )
        return self._providers[name]

    def for_job(self, job) -> BaseProvider:
        """Pick the adapter for ``job``: explicit name, then avatar routing, then the default."""
        mode = GenerationMode(job.mode)
        if job.provider:
            provider = self.get(job.provider)
        elif mode == GenerationMode.AVATAR:
            provider = self.get("heygen")
        else:
            provider = self.get(self.default)

        if not provider.supports(mode):
            raise ValidationError(f"Provider '{provider.name}' does not support mode '{mode.value}'")
        if not provider.is_available():
            logger.warning("Provider %s has no API key configured", provider.name)
        return provider

    def names(self) -> list[str]:
        return sorted(self._providers)

    def close(self) -> None:
        for provider in self._providers.values():
            provider.close()
