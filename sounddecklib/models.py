from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Sequence

import numpy as np


def _sine(phase_cycles: np.ndarray) -> np.ndarray:
    return np.sin(2.0 * np.pi * phase_cycles)


def _square(phase_cycles: np.ndarray) -> np.ndarray:
    return np.sign(np.sin(2.0 * np.pi * phase_cycles)) * 0.8


def _sawtooth(phase_cycles: np.ndarray) -> np.ndarray:
    return 2.0 * np.mod(phase_cycles, 1.0) - 1.0


def _triangle(phase_cycles: np.ndarray) -> np.ndarray:
    return 4.0 * np.abs(np.mod(phase_cycles, 1.0) - 0.5) - 1.0


class Waveform(Enum):
    """Tone generator waveforms.

    Each member maps to a pure function of the phase expressed in cycles
    (``frequency * t``).
    """
    SINE = "sine"
    SQUARE = "square"
    SAWTOOTH = "sawtooth"
    TRIANGLE = "triangle"

    @property
    def sample_fn(self) -> Callable[[np.ndarray], np.ndarray]:
        return _WAVEFORM_FUNCS[self]

    @classmethod
    def parse(cls, value: Waveform | str) -> Waveform:
        if isinstance(value, Waveform):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            opts = ", ".join(w.value for w in cls)
            raise ValueError(f"Unknown waveform {value!r} (expected one of {opts})")


_WAVEFORM_FUNCS: dict[Waveform, Callable[[np.ndarray], np.ndarray]] = {
    Waveform.SINE: _sine,
    Waveform.SQUARE: _square,
    Waveform.SAWTOOTH: _sawtooth,
    Waveform.TRIANGLE: _triangle,
}


@dataclass(frozen=True, eq=False)
class PcmBuffer:
    """Decoded audio.

    Attributes:
        samplerate: Sample rate in Hz.
        data:       float32 array of shape ``(frames, channels)`` with values
                    in [-1, 1].  The array is made read-only on construction,
                    so transforms must always build a new buffer.
    """
    samplerate: int
    data: np.ndarray = field(repr=False)

    def __post_init__(self) -> None:
        # Always copy: callers keep no writable alias into the buffer.
        arr = np.array(self.data, dtype=np.float32)
        if arr.ndim == 1:
            arr = arr.reshape(-1, 1)
        if arr.ndim != 2 or arr.shape[1] not in (1, 2):
            raise ValueError(
                f"PCM buffer must have 1 or 2 channels, got shape {arr.shape}"
            )
        if self.samplerate <= 0:
            raise ValueError(f"Invalid sample rate: {self.samplerate}")
        arr.flags.writeable = False
        object.__setattr__(self, "data", arr)

    @classmethod
    def from_channels(cls, samplerate: int,
                      channels: Sequence[np.ndarray]) -> PcmBuffer:
        """Build a buffer from per-channel 1-D arrays of equal length."""
        return cls(samplerate, np.stack([np.asarray(c, dtype=np.float32)
                                         for c in channels], axis=1))

    @classmethod
    def silence(cls, samplerate: int, frames: int, channels: int = 1) -> PcmBuffer:
        return cls(samplerate, np.zeros((frames, channels), dtype=np.float32))

    @property
    def channels(self) -> int:
        return int(self.data.shape[1])

    @property
    def frames(self) -> int:
        return int(self.data.shape[0])

    @property
    def duration_sec(self) -> float:
        return self.frames / self.samplerate

    def channel(self, index: int) -> np.ndarray:
        """Read-only view of one channel's samples."""
        return self.data[:, index]

    def __len__(self) -> int:
        return self.frames


@dataclass(frozen=True)
class Segment:
    """A sound-present interval in seconds, as found by silence detection."""
    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start


@dataclass
class Region:
    """A chopper selection ``[start, end)`` in seconds plus display info."""
    start: float
    end: float
    label: str = ""
    color: str = ""

    @property
    def duration(self) -> float:
        return self.end - self.start


@dataclass(frozen=True)
class ProcessingOptions:
    trim: bool = True
    normalize: bool = True
    fade: bool = True

    def enabled_ids(self) -> set[str]:
        ids = set()
        if self.trim:
            ids.add("trim_silence")
        if self.normalize:
            ids.add("normalize")
        if self.fade:
            ids.add("fade")
        return ids


@dataclass
class ProcessorResult:
    processor_id: str
    method: str
    data: dict[str, Any] = field(default_factory=dict)
    skipped: bool = False


@dataclass
class SoundMeta:
    """Per-sound metadata carried in export bundles."""
    id: str
    name: str
    icon: str = "\U0001F50A"
    category: str = "All"
    color: str = "red"
    volume: int = 80
    bank: str = "Main"
    order: int = 0
    loop_default: bool = False


@dataclass
class IngestResult:
    """Outcome of running one file through the ingestion pipeline."""
    name: str
    data: bytes | None = None
    buffer: PcmBuffer | None = None
    processor_results: list[ProcessorResult] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.data is not None
