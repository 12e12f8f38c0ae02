"""Microphone recording."""

from __future__ import annotations

import logging
from typing import Any

import numpy as np

from .codec import encode
from .models import PcmBuffer, ProcessingOptions
from .pipeline import IngestPipeline

log = logging.getLogger(__name__)


class CaptureError(Exception):
    """Raised when the microphone is unavailable or access is denied."""
    pass


def _load_sounddevice():
    # Importing sounddevice loads PortAudio (OSError when missing).
    try:
        import sounddevice as sd
    except OSError as e:
        raise CaptureError(f"No audio input available: {e}") from e
    return sd


def record(
    duration_sec: float,
    samplerate: int = 44100,
    channels: int = 1,
    device=None,
) -> PcmBuffer:
    """Record *duration_sec* seconds from the default (or given) input.

    Blocks until the recording is complete.

    Raises:
        CaptureError: no input device, access denied, or the stream failed.
    """
    if duration_sec <= 0:
        raise ValueError(f"Recording duration must be positive, got {duration_sec}")
    if channels not in (1, 2):
        raise ValueError(f"Recording supports 1 or 2 channels, got {channels}")

    sd = _load_sounddevice()
    frames = int(round(duration_sec * samplerate))
    log.debug("recording %d frames @ %d Hz", frames, samplerate)
    try:
        data = sd.rec(frames, samplerate=samplerate, channels=channels,
                      dtype="float32", device=device)
        sd.wait()
    except (sd.PortAudioError, ValueError) as e:
        # ValueError: sounddevice could not resolve the input device
        raise CaptureError(f"Recording failed: {e}") from e
    return PcmBuffer(samplerate, np.clip(data, -1.0, 1.0))


def record_clip(
    duration_sec: float,
    config: dict[str, Any] | None = None,
    options: ProcessingOptions | None = None,
    device=None,
) -> bytes:
    """Record from the microphone and return a trimmed, normalized, faded
    WAV clip."""
    config = config or {}
    buffer = record(
        duration_sec,
        samplerate=config.get("record_samplerate", 44100),
        device=device,
    )
    buffer, _results = IngestPipeline(config=config).run_stages(
        buffer, options or ProcessingOptions(),
    )
    return encode(buffer)
