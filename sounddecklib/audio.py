from __future__ import annotations

import numpy as np

from .models import PcmBuffer, Segment


# ---------------------------------------------------------------------------
# Conversion helpers
# ---------------------------------------------------------------------------

NORMALIZE_TARGET = 0.95
NORMALIZE_FLOOR = 0.001


def linear_to_db(linear: float) -> float:
    if linear <= 0:
        return float(-np.inf)
    return float(20 * np.log10(linear))


def format_duration(samples: int, samplerate: int) -> str:
    if samplerate <= 0:
        return "00:00.000"
    seconds = samples / samplerate
    m = int(seconds // 60)
    s = int(seconds % 60)
    ms = int((seconds % 1) * 1000)
    return f"{m:02d}:{s:02d}.{ms:03d}"


def peak(buffer: PcmBuffer) -> float:
    """Peak absolute amplitude across all channels."""
    if buffer.data.size == 0:
        return 0.0
    return float(np.max(np.abs(buffer.data)))


# ---------------------------------------------------------------------------
# Stateless DSP functions
#
# Every function returns a new PcmBuffer and leaves its input untouched
# (PcmBuffer arrays are read-only, so an accidental in-place edit raises).
# ---------------------------------------------------------------------------

def trim_bounds(
    buffer: PcmBuffer,
    threshold: float = 0.02,
    pad_ms: float = 10.0,
) -> tuple[int, int]:
    """Return ``(start, stop)`` frame bounds of the non-silent part.

    Channel 0 is scanned from both ends for the first sample whose absolute
    amplitude reaches *threshold*.  The same padding is restored on both
    sides: up to *pad_ms*, but never more than the silence removed on the
    shorter side.

    A fully silent buffer collapses to its last frame (the point where the
    two scans meet), so the result is never empty unless the input is.
    """
    n = buffer.frames
    if n == 0:
        return 0, 0

    loud = np.flatnonzero(np.abs(buffer.channel(0)) >= threshold)
    if loud.size == 0:
        return n - 1, n

    start = int(loud[0])
    end = int(loud[-1])
    pad = min(int(np.floor(buffer.samplerate * pad_ms / 1000.0)),
              start, n - 1 - end)
    return start - pad, end + pad + 1


def trim_silence(
    buffer: PcmBuffer,
    threshold: float = 0.02,
    pad_ms: float = 10.0,
) -> PcmBuffer:
    """Cut leading and trailing silence from all channels."""
    start, stop = trim_bounds(buffer, threshold, pad_ms)
    return PcmBuffer(buffer.samplerate, buffer.data[start:stop])


def normalize(buffer: PcmBuffer, target: float = NORMALIZE_TARGET) -> PcmBuffer:
    """Peak-normalize *buffer* to *target*.

    Near-silent buffers (peak below 0.001) and buffers already above the
    target are returned unchanged.
    """
    p = peak(buffer)
    if p < NORMALIZE_FLOOR or p > target:
        return buffer
    gain = target / p
    return PcmBuffer(buffer.samplerate, buffer.data.astype(np.float64) * gain)


def fade_in_out(buffer: PcmBuffer, ms: float = 15.0) -> PcmBuffer:
    """Apply a linear fade-in and a mirrored fade-out of *ms* milliseconds.

    Frame ``i`` of the head is scaled by ``i / samples`` and frame
    ``n - 1 - i`` of the tail by the same factor.  When the ramp is longer
    than the buffer both ramps cover the whole buffer.
    """
    samples = int(round(buffer.samplerate * ms / 1000.0))
    out = buffer.data.astype(np.float64)
    n = out.shape[0]
    k = min(samples, n)
    if k > 0:
        ramp = (np.arange(k, dtype=np.float64) / samples)[:, None]
        out[:k] *= ramp
        tail = out[n - k:]
        tail *= ramp[::-1]
    return PcmBuffer(buffer.samplerate, out)


def extract_region(
    buffer: PcmBuffer,
    start_sec: float,
    end_sec: float,
) -> PcmBuffer | None:
    """Copy ``[start_sec, end_sec)`` into a new buffer.

    Bounds are clamped to the buffer.  Returns None for an empty selection.
    """
    sr = buffer.samplerate
    start = max(0, int(np.floor(start_sec * sr)))
    end = min(int(np.floor(end_sec * sr)), buffer.frames)
    if end - start <= 0:
        return None
    return PcmBuffer(sr, buffer.data[start:end])


def detect_silences(
    buffer: PcmBuffer,
    threshold: float = 0.03,
    min_silence_sec: float = 0.15,
    min_segment_sec: float = 0.05,
) -> list[Segment]:
    """Split channel 0 into sound segments separated by silence.

    Equivalent to a two-state scan.  Outside a segment, the first sample
    louder than *threshold* opens one.  Inside, the first quiet sample marks
    a candidate silence start; once ``floor(min_silence_sec * sr)`` further
    samples have passed with no loud sample, the segment closes at the
    candidate.  A loud sample before that cancels the candidate.  A segment
    still open at the end of the buffer ends at the buffer duration.

    Segments shorter than *min_segment_sec* are dropped.  The result is in
    chronological order.
    """
    sr = buffer.samplerate
    n = buffer.frames
    min_samples = int(np.floor(min_silence_sec * sr))

    loud_idx = np.flatnonzero(np.abs(buffer.channel(0)) > threshold)
    if loud_idx.size == 0:
        return []

    # A quiet run closes the segment when it spans min_samples + 1 samples.
    gaps = np.diff(loud_idx) - 1
    splits = np.flatnonzero(gaps >= min_samples + 1)
    starts = np.concatenate(([loud_idx[0]], loud_idx[splits + 1]))
    ends = np.concatenate((loud_idx[splits] + 1, [loud_idx[-1] + 1]))

    segments: list[Segment] = []
    last = len(starts) - 1
    for i, (s, e) in enumerate(zip(starts, ends)):
        if i == last and (n - int(e)) < min_samples + 1:
            end_sec = buffer.duration_sec
        else:
            end_sec = int(e) / sr
        segments.append(Segment(start=int(s) / sr, end=end_sec))

    return [seg for seg in segments if seg.duration >= min_segment_sec]
