"""Audio output backends.

The playback engine talks to an :class:`AudioOutput`, which creates one
:class:`VoiceHandle` per playing sound.  :class:`SoundDeviceOutput` plays
each voice on its own sounddevice ``OutputStream``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Callable

import numpy as np

from .models import PcmBuffer

log = logging.getLogger(__name__)


class PlaybackError(Exception):
    """Raised when the output device cannot start a voice."""
    pass


class VoiceHandle(ABC):
    """A single source of sound on an output device."""

    @abstractmethod
    def start(self) -> None:
        """Begin playback immediately.  Raises :class:`PlaybackError`."""
        ...

    @abstractmethod
    def halt(self) -> bool:
        """Stop playback.

        Returns False when the voice had already stopped (finished or
        halted before); never raises for that case.
        """
        ...

    def release(self) -> None:
        """Free device resources held by a voice that has stopped.

        Called by the engine, outside the audio thread, after a voice
        finished on its own.  Safe to call more than once.
        """

    @property
    @abstractmethod
    def active(self) -> bool:
        ...


class AudioOutput(ABC):

    @abstractmethod
    def create_voice(
        self,
        buffer: PcmBuffer,
        *,
        gain: float = 1.0,
        loop: bool = False,
        start_frame: int = 0,
        frame_count: int | None = None,
        on_finished: Callable[[], None] | None = None,
    ) -> VoiceHandle:
        """Prepare (but do not start) a voice for *buffer*.

        *on_finished* is called once when a non-looping voice reaches the
        end of its audio.  It is not called after :meth:`VoiceHandle.halt`.
        """
        ...


# ---------------------------------------------------------------------------
# sounddevice backend
# ---------------------------------------------------------------------------

def _load_sounddevice():
    # Importing sounddevice loads PortAudio (OSError when missing).
    try:
        import sounddevice as sd
    except OSError as e:
        raise PlaybackError(f"No audio output available: {e}") from e
    return sd


class SoundDeviceVoice(VoiceHandle):

    def __init__(self, sd, audio: np.ndarray, samplerate: int, gain: float,
                 loop: bool, on_finished: Callable[[], None] | None,
                 device=None):
        self._sd = sd
        self._audio = audio
        self._samplerate = samplerate
        self._gain = np.float32(gain)
        self._loop = loop and audio.shape[0] > 0
        self._on_finished = on_finished
        self._device = device
        self._stream = None
        self._frame_count = [0]
        self._halted = False
        self._open = False

    @property
    def active(self) -> bool:
        return self._stream is not None and not self._halted

    def start(self) -> None:
        sd = self._sd
        play_data = self._audio
        gain = self._gain
        loop = self._loop
        total = play_data.shape[0]
        frame_count = self._frame_count

        def callback(outdata, frames, time_info, status):
            pos = frame_count[0]
            if loop:
                filled = 0
                while filled < frames:
                    chunk = min(frames - filled, total - pos)
                    outdata[filled:filled + chunk] = play_data[pos:pos + chunk] * gain
                    filled += chunk
                    pos = (pos + chunk) % total
                frame_count[0] = pos
                return
            end = pos + frames
            if end <= total:
                outdata[:] = play_data[pos:end] * gain
                frame_count[0] = end
            else:
                remaining = total - pos
                if remaining > 0:
                    outdata[:remaining] = play_data[pos:] * gain
                outdata[remaining:] = 0
                frame_count[0] = total
                raise sd.CallbackStop()

        try:
            stream = sd.OutputStream(
                samplerate=self._samplerate,
                channels=play_data.shape[1],
                dtype="float32",
                device=self._device,
                callback=callback,
                finished_callback=self._on_stream_finished,
            )
        except sd.PortAudioError as e:
            raise PlaybackError(str(e)) from e
        self._stream = stream
        self._open = True
        try:
            stream.start()
        except sd.PortAudioError as e:
            self.release()
            self._stream = None
            raise PlaybackError(str(e)) from e

    def _on_stream_finished(self):
        """Called by sounddevice from the audio thread when the stream ends."""
        if self._halted:
            return
        self._halted = True
        if self._on_finished is not None:
            self._on_finished()

    def halt(self) -> bool:
        if self._stream is None:
            return False
        if self._halted:
            self.release()
            return False
        self._halted = True
        try:
            self._stream.stop()
        except self._sd.PortAudioError as e:
            log.debug("halt on a stopped stream: %s", e)
            return False
        finally:
            self.release()
        return True

    def release(self) -> None:
        if self._stream is None or not self._open:
            return
        self._open = False
        try:
            self._stream.close()
        except self._sd.PortAudioError as e:
            log.debug("closing stream failed: %s", e)


class SoundDeviceOutput(AudioOutput):
    """Plays voices on a PortAudio device through sounddevice."""

    def __init__(self, device=None):
        self._sd = _load_sounddevice()
        self.device = device

    def create_voice(
        self,
        buffer: PcmBuffer,
        *,
        gain: float = 1.0,
        loop: bool = False,
        start_frame: int = 0,
        frame_count: int | None = None,
        on_finished: Callable[[], None] | None = None,
    ) -> VoiceHandle:
        start = min(max(0, start_frame), buffer.frames)
        stop = buffer.frames if frame_count is None else min(buffer.frames, start + frame_count)
        return SoundDeviceVoice(
            self._sd,
            buffer.data[start:stop],
            buffer.samplerate,
            gain,
            loop,
            on_finished,
            device=self.device,
        )
