from __future__ import annotations

import numpy as np
import pytest

from sounddecklib.codec import encode
from sounddecklib.engine import PlaybackEngine
from sounddecklib.events import EventBus
from sounddecklib.models import PcmBuffer
from sounddecklib.output import AudioOutput, PlaybackError, VoiceHandle

SR = 8000


def block(seconds: float, level: float = 0.5, sr: int = SR) -> np.ndarray:
    """Constant-level block, handy for exact threshold arithmetic."""
    return np.full(int(round(seconds * sr)), level, dtype=np.float32)


def silence(seconds: float, sr: int = SR) -> np.ndarray:
    return np.zeros(int(round(seconds * sr)), dtype=np.float32)


def sine(freq: float, seconds: float, amp: float = 0.5, sr: int = SR) -> np.ndarray:
    t = np.arange(int(round(seconds * sr))) / sr
    return (amp * np.sin(2 * np.pi * freq * t)).astype(np.float32)


class FakeVoice(VoiceHandle):
    """Voice that never touches a device.  Tests end it with finish()."""

    def __init__(self, output, buffer, gain, loop, start_frame, frame_count,
                 on_finished):
        self.output = output
        self.buffer = buffer
        self.gain = gain
        self.loop = loop
        self.start_frame = start_frame
        self.frame_count = frame_count
        self.on_finished = on_finished
        self.started = False
        self.running = False
        self.halt_calls = 0
        self.release_calls = 0

    @property
    def active(self) -> bool:
        return self.running

    def start(self) -> None:
        if self.output.fail_start:
            raise PlaybackError("device busy")
        self.started = True
        self.running = True

    def halt(self) -> bool:
        self.halt_calls += 1
        if not self.running:
            return False
        self.running = False
        return True

    def release(self) -> None:
        self.release_calls += 1

    def finish(self) -> None:
        """Simulate the audio thread reaching the end of the buffer."""
        self.running = False
        if self.on_finished is not None:
            self.on_finished()


class FakeOutput(AudioOutput):

    def __init__(self):
        self.voices: list[FakeVoice] = []
        self.fail_start = False

    def create_voice(self, buffer, *, gain=1.0, loop=False, start_frame=0,
                     frame_count=None, on_finished=None):
        voice = FakeVoice(self, buffer, gain, loop, start_frame, frame_count,
                          on_finished)
        self.voices.append(voice)
        return voice


class Recorder:
    """Collects EventBus emissions as ``(event_type, data)`` tuples."""

    def __init__(self, bus: EventBus, *event_types: str):
        self.events: list[tuple[str, dict]] = []
        for et in event_types:
            bus.subscribe(et, lambda _et=et, **data: self.events.append((_et, data)))

    def of(self, event_type: str) -> list[dict]:
        return [d for et, d in self.events if et == event_type]


@pytest.fixture
def tone_buffer():
    return PcmBuffer(SR, sine(440, 1.0))


@pytest.fixture
def padded_buffer():
    """0.25 s silence, 0.5 s at 0.5, 0.25 s silence."""
    return PcmBuffer(SR, np.concatenate([silence(0.25), block(0.5), silence(0.25)]))


@pytest.fixture
def wav_bytes(tone_buffer):
    return encode(tone_buffer)


@pytest.fixture
def output():
    return FakeOutput()


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def engine(output, event_bus):
    return PlaybackEngine(output=output, event_bus=event_bus)
