"""Provider progress to UI progress reconciliation.

The UI range is split into bands: 0-10 submission, 10-85 remote generation,
85-100 local finishing (download, rehost, ready). Every function here is pure
so a retried worker republishing the same observation writes the same value.
"""

import math

from reelcast.models.provider import ProviderPhase

GENERATION_FLOOR = 10
GENERATION_CEILING = 85
GENERATION_SCALE = 0.75

DOWNLOAD_PROGRESS = 90
UPLOAD_PROGRESS = 95


def _clamp(value: float | None, low: float = 0.0, high: float = 100.0) -> float:
    if value is None:
        return low
    try:
        value = float(value)
    except (TypeError, ValueError):
        return low
    if math.isnan(value):
        return low
    return max(low, min(high, value))


def progress_label(ui_progress: int, phase: ProviderPhase | None = None) -> str:
    """Human-readable label for a UI progress value."""
    if ui_progress <= GENERATION_FLOOR:
        return "submitting"
    if phase == ProviderPhase.QUEUED or ui_progress < 30:
        return "queued"
    if ui_progress < 80:
        return "generating"
    if ui_progress <= GENERATION_CEILING:
        return "rendering"
    return "uploading"


def map_progress(
    provider_progress: float | None, phase: ProviderPhase = ProviderPhase.RUNNING
) -> tuple[int, str]:
    """Compress provider progress (0..100) into the generation band of the UI.

    Total over its inputs: None, NaN and out-of-range values are clamped.
    """
    p = _clamp(provider_progress)
    ui = min(GENERATION_FLOOR + math.floor(p * GENERATION_SCALE), GENERATION_CEILING)
    return ui, progress_label(ui, phase)


def pipeline_progress(
    stage_index: int,
    stage_count: int,
    stage_progress: float = 0.0,
    weights: list[float] | None = None,
) -> int:
    """Overall 0..100 progress of a pipeline run.

    ``stage_progress`` is the current stage's own 0..100 value. Stages are
    weighted equally unless ``weights`` (one per stage) is given.
    """
    if stage_count <= 0:
        return 100
    if weights is None or len(weights) != stage_count:
        weights = [1.0] * stage_count
    total = sum(weights)
    if total <= 0:
        return 100

    index = max(0, min(stage_index, stage_count))
    done = sum(weights[:index])
    if index < stage_count:
        done += weights[index] * _clamp(stage_progress) / 100.0
    return int(max(0, min(100, math.floor(done / total * 100))))
