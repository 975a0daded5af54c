"""Named pipeline presets and their expansion into an ordered stage list."""

from reelcast.models.pipeline import (
    EffectIntensity,
    EffectName,
    EffectsOptions,
    OptimizeOptions,
    PipelineOverrides,
    PipelinePresetId,
    Platform,
    StageName,
    StageSpec,
    SubtitlesOptions,
    SubtitleStyle,
    ThumbnailOptions,
)

PRESETS: dict[PipelinePresetId, PipelineOverrides] = {
    # short-form social: handheld look, bold captions, TikTok encode
    PipelinePresetId.TIKTOK_UGC: PipelineOverrides(
        effects=EffectsOptions(
            effects=[EffectName.CAMERA_SHAKE, EffectName.PHONE_QUALITY, EffectName.FILM_GRAIN],
            intensity=EffectIntensity.LIGHT,
        ),
        subtitles=SubtitlesOptions(
            style=SubtitleStyle(font_size=28, font_color="white", outline_color="black", outline_width=2)
        ),
        optimize=OptimizeOptions(platform=Platform.TIKTOK),
        thumbnail=ThumbnailOptions(time_seconds=1.0),
    ),
    # testimonial-style: mirrored selfie framing
    PipelinePresetId.REVIEW: PipelineOverrides(
        effects=EffectsOptions(
            effects=[EffectName.SELFIE_MODE, EffectName.PHONE_QUALITY],
            intensity=EffectIntensity.LIGHT,
        ),
        optimize=OptimizeOptions(platform=Platform.TIKTOK),
        thumbnail=ThumbnailOptions(),
    ),
    # pass-through optimize
    PipelinePresetId.SIMPLE: PipelineOverrides(
        optimize=OptimizeOptions(platform=Platform.TIKTOK),
        thumbnail=ThumbnailOptions(),
    ),
    PipelinePresetId.CUSTOM: PipelineOverrides(),
}

# Encoding stages dominate wall time in the social preset.
PRESET_WEIGHTS: dict[PipelinePresetId, dict[StageName, float]] = {
    PipelinePresetId.TIKTOK_UGC: {
        StageName.INIT: 1.0,
        StageName.EFFECTS: 3.0,
        StageName.TRIM: 1.0,
        StageName.SUBTITLES: 2.0,
        StageName.OPTIMIZE: 3.0,
        StageName.THUMBNAIL: 0.5,
        StageName.UPLOAD: 1.0,
    },
}


def merge_overrides(base: PipelineOverrides, overrides: PipelineOverrides | None) -> PipelineOverrides:
    """Per-stage replacement of ``base`` by ``overrides``.

    Subtitle overrides that carry only entries keep the preset's caption style.
    """
    if overrides is None:
        return base
    merged = base.model_copy()
    for field in PipelineOverrides.model_fields:
        value = getattr(overrides, field)
        if value is None:
            continue
        if field == "subtitles" and base.subtitles and "style" not in value.model_fields_set:
            value = value.model_copy(update={"style": base.subtitles.style})
        setattr(merged, field, value)
    return merged


def build_stages(
    preset_id: PipelinePresetId, overrides: PipelineOverrides | None = None
) -> list[StageSpec]:
    """Expand a preset (plus request overrides) into the ordered stage list.

    ``init`` and ``upload`` always bracket the run; the optional stages in
    between are included only when enabled and non-empty.
    """
    config = merge_overrides(PRESETS[preset_id], overrides)
    weights = PRESET_WEIGHTS.get(preset_id, {})

    def stage(name: StageName, options=None) -> StageSpec:
        return StageSpec(
            name=name,
            options=options.model_dump(mode="json") if options is not None else {},
            weight=weights.get(name, 1.0),
        )

    stages = [stage(StageName.INIT)]
    if config.effects and config.effects.enabled and config.effects.effects:
        stages.append(stage(StageName.EFFECTS, config.effects))
    if config.trim and config.trim.enabled:
        stages.append(stage(StageName.TRIM, config.trim))
    if config.subtitles and config.subtitles.enabled and config.subtitles.entries:
        stages.append(stage(StageName.SUBTITLES, config.subtitles))
    if config.optimize and config.optimize.enabled:
        stages.append(stage(StageName.OPTIMIZE, config.optimize))
    if config.thumbnail and config.thumbnail.enabled:
        stages.append(stage(StageName.THUMBNAIL, config.thumbnail))
    stages.append(stage(StageName.UPLOAD))
    return stages
