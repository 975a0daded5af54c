"""Variant presets: named recipes applied to one finished source video."""

from reelcast.models.batch import VariantPresetId, VariantRequest, VariantSpec
from reelcast.models.errors import ValidationError
from reelcast.models.pipeline import (
    EffectIntensity,
    EffectName,
    EffectsOptions,
    OptimizeOptions,
    PipelineOverrides,
    Platform,
    SubtitleEntry,
    SubtitlesOptions,
    ThumbnailOptions,
)

# Subtitles with no entries mean "burn the request's subtitle texts".
_WITH_SUBTITLES = SubtitlesOptions()

VARIANT_PRESETS: dict[VariantPresetId, list[VariantSpec]] = {
    VariantPresetId.TIKTOK_AB: [
        VariantSpec(name="Original", platform=None),
        VariantSpec(
            name="UGC light",
            effects=EffectsOptions(effects=[EffectName.PHONE_QUALITY], intensity=EffectIntensity.LIGHT),
            platform=None,
        ),
        VariantSpec(
            name="UGC heavy",
            effects=EffectsOptions(
                effects=[EffectName.CAMERA_SHAKE, EffectName.PHONE_QUALITY, EffectName.FILM_GRAIN],
                intensity=EffectIntensity.MEDIUM,
            ),
            platform=None,
        ),
        VariantSpec(
            name="Vintage",
            effects=EffectsOptions(
                effects=[EffectName.VINTAGE_FILTER, EffectName.FILM_GRAIN],
                intensity=EffectIntensity.MEDIUM,
            ),
            platform=None,
        ),
    ],
    VariantPresetId.MULTI_PLATFORM: [
        VariantSpec(name="TikTok", platform=Platform.TIKTOK),
        VariantSpec(name="Instagram Reels", platform=Platform.INSTAGRAM_REELS),
        VariantSpec(name="YouTube Shorts", platform=Platform.YOUTUBE_SHORTS),
        VariantSpec(name="Twitter/X", platform=Platform.TWITTER),
    ],
    VariantPresetId.FULL_TEST: [
        VariantSpec(name="Original", platform=None),
        VariantSpec(
            name="UGC light",
            effects=EffectsOptions(effects=[EffectName.PHONE_QUALITY], intensity=EffectIntensity.LIGHT),
            platform=None,
        ),
        VariantSpec(
            name="UGC medium",
            effects=EffectsOptions(
                effects=[EffectName.CAMERA_SHAKE, EffectName.PHONE_QUALITY],
                intensity=EffectIntensity.MEDIUM,
            ),
            platform=None,
        ),
        VariantSpec(name="Subtitled", subtitles=_WITH_SUBTITLES, platform=None),
        VariantSpec(
            name="UGC + subtitles",
            effects=EffectsOptions(effects=[EffectName.PHONE_QUALITY], intensity=EffectIntensity.LIGHT),
            subtitles=_WITH_SUBTITLES,
            platform=None,
        ),
    ],
}


def split_subtitles(texts: list[str], total_duration: float, overlap: float = 0.2) -> list[SubtitleEntry]:
    """Spread ``texts`` evenly over the video, each overlapping the previous slightly."""
    texts = [t for t in texts if t.strip()]
    if not texts or total_duration <= 0:
        return []
    slot = total_duration / len(texts)
    return [
        SubtitleEntry(
            text=text,
            start_time=max(0.0, i * slot - (overlap if i > 0 else 0.0)),
            end_time=(i + 1) * slot,
        )
        for i, text in enumerate(texts)
    ]


def resolve_variants(request: VariantRequest) -> list[VariantSpec]:
    """The variant list for a request.

    ``full_test`` keeps its subtitled variants only when subtitle texts are
    given (5 variants, otherwise 3).
    """
    if request.preset == VariantPresetId.CUSTOM:
        if not request.custom_variants:
            raise ValidationError("custom variant preset needs at least one variant")
        return list(request.custom_variants)

    variants = VARIANT_PRESETS[request.preset]
    if not request.subtitle_texts:
        variants = [v for v in variants if v.subtitles is None]
    return list(variants)


def variant_overrides(variant: VariantSpec, entries: list[SubtitleEntry]) -> PipelineOverrides:
    """Stage overrides for a ``custom`` pipeline run producing ``variant``."""
    subtitles = None
    if variant.subtitles is not None:
        subtitles = variant.subtitles
        if not subtitles.entries:
            subtitles = subtitles.model_copy(update={"entries": entries, "enabled": bool(entries)})
    return PipelineOverrides(
        effects=variant.effects,
        subtitles=subtitles,
        optimize=OptimizeOptions(platform=variant.platform) if variant.platform else None,
        thumbnail=ThumbnailOptions(),
    )
