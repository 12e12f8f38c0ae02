"""Cutting new clips out of a longer recording.

A selection is a :class:`Region`.  Saving a region extracts it, normalizes
it, applies the fade envelope and encodes it as WAV.  Auto-split does the
same for every segment found by silence detection.
"""

from __future__ import annotations

import logging
from typing import Any

from .audio import detect_silences, extract_region, fade_in_out, normalize
from .codec import encode
from .engine import PlaybackEngine
from .models import PcmBuffer, Region

log = logging.getLogger(__name__)

REGION_COLORS = [
    "#ff3d71", "#00e5a0", "#7b61ff", "#ffaa00",
    "#3d9eff", "#ff61a6", "#00d4c8", "#ffe144",
]

# Selections shorter than this are treated as a click, not a region
MIN_SELECTION_SEC = 0.02


def region_color(index: int) -> str:
    return REGION_COLORS[index % len(REGION_COLORS)]


def render_region(
    buffer: PcmBuffer,
    region: Region,
    config: dict[str, Any] | None = None,
) -> bytes | None:
    """Extract *region* from *buffer* and return it as a finished WAV clip.

    Returns None when the selection is empty or shorter than
    :data:`MIN_SELECTION_SEC`.
    """
    config = config or {}
    if region.duration < MIN_SELECTION_SEC:
        return None
    clip = extract_region(buffer, region.start, region.end)
    if clip is None:
        return None
    clip = normalize(clip, config.get("normalize_target", 0.95))
    clip = fade_in_out(clip, config.get("fade_ms", 15.0))
    return encode(clip)


def auto_split(
    buffer: PcmBuffer,
    config: dict[str, Any] | None = None,
    first_index: int = 0,
) -> list[tuple[Region, bytes]]:
    """Split *buffer* at silences and render every segment.

    Regions are labelled ``Auto N`` and colored in sequence, continuing
    from *first_index* so they can be appended to existing regions.
    """
    config = config or {}
    segments = detect_silences(
        buffer,
        threshold=config.get("silence_threshold", 0.03),
        min_silence_sec=config.get("min_silence_sec", 0.15),
        min_segment_sec=config.get("min_segment_sec", 0.05),
    )
    log.debug("auto-split found %d segments", len(segments))

    rendered: list[tuple[Region, bytes]] = []
    for i, seg in enumerate(segments):
        n = first_index + i
        region = Region(start=seg.start, end=seg.end,
                        label=f"Auto {n + 1}", color=region_color(n))
        clip = render_region(buffer, region, config)
        if clip is None:
            continue
        rendered.append((region, clip))
    return rendered


def preview_region(
    engine: PlaybackEngine,
    buffer: PcmBuffer,
    region: Region | None = None,
) -> None:
    """Audition *region* (or the whole buffer) on the engine's preview slot."""
    if region is not None and region.duration > 0:
        engine.preview_buffer(buffer, region.start, region.duration)
    else:
        engine.preview_buffer(buffer)
