from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

from .codec import DecodeError, decode
from .events import EventBus
from .models import PcmBuffer
from .output import AudioOutput, PlaybackError, VoiceHandle

log = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENT = 8
DEFAULT_VOLUME = 0.8


@dataclass
class Voice:
    """One playing sound.  Holds its own reference to the buffer it started
    with, so evicting the cache entry does not affect it."""
    sound_id: str
    buffer: PcmBuffer = field(repr=False)
    gain: float
    loop: bool
    handle: VoiceHandle | None = field(default=None, repr=False)


class PlaybackEngine:
    """Buffer cache plus polyphonic, per-sound playback.

    Every sound ID is either idle or playing, with at most one voice per ID
    and at most ``max_concurrent`` voices overall.  A separate single-slot
    preview voice (used when auditioning chopper selections) is exempt from
    both rules.

    Voices report natural completion from the audio thread, so all state is
    guarded by a re-entrant lock.  ``play`` checks its guards and registers
    the voice without releasing the lock in between.
    """

    def __init__(
        self,
        output: AudioOutput | None = None,
        max_concurrent: int | None = None,
        event_bus: EventBus | None = None,
        config: dict[str, Any] | None = None,
    ):
        self.config = config or {}
        self.event_bus = event_bus
        if max_concurrent is None:
            max_concurrent = self.config.get("max_concurrent", DEFAULT_MAX_CONCURRENT)
        self.max_concurrent = int(max_concurrent)
        self.default_volume = float(self.config.get("default_volume", DEFAULT_VOLUME))

        self._output = output
        self._buffers: dict[str, PcmBuffer] = {}
        self._voices: dict[str, Voice] = {}
        self._preview: VoiceHandle | None = None
        # handles that ended on the audio thread, released on the next call
        self._finished: list[VoiceHandle] = []
        self._lock = threading.RLock()

    @property
    def output(self) -> AudioOutput:
        """The output backend, opened on first use."""
        if self._output is None:
            from .output import SoundDeviceOutput
            self._output = SoundDeviceOutput()
        return self._output

    def _emit(self, event_type: str, **data):
        if self.event_bus:
            self.event_bus.emit(event_type, **data)

    def release_finished(self) -> int:
        """Free the device resources of voices that ended on their own.

        Called at the start of every play, stop and preview call.
        Returns the number of handles released.
        """
        with self._lock:
            handles, self._finished = self._finished, []
        for handle in handles:
            handle.release()
        return len(handles)

    # ------------------------------------------------------------------
    # Buffer cache
    # ------------------------------------------------------------------

    def decode(self, sound_id: str, data: bytes) -> PcmBuffer | None:
        """Decode *data* and cache it under *sound_id*.

        Replaces any previous entry.  On failure the cause is logged and
        reported as a ``decode.failed`` event, the cache is left as it was
        and None is returned.
        """
        try:
            buffer = decode(data)
        except DecodeError as e:
            log.warning("Failed to decode audio for %s: %s", sound_id, e)
            self._emit("decode.failed", sound_id=sound_id, error=str(e))
            return None
        with self._lock:
            self._buffers[sound_id] = buffer
        log.debug("cached %s: %d frames @ %d Hz", sound_id,
                  buffer.frames, buffer.samplerate)
        return buffer

    def decode_many(
        self,
        items: dict[str, bytes],
        max_workers: int | None = None,
    ) -> dict[str, PcmBuffer | None]:
        """Decode several sounds concurrently.  Same per-item rules as
        :meth:`decode`."""
        if not items:
            return {}
        workers = min(max_workers or min(os.cpu_count() or 4, 8), len(items))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {sid: pool.submit(self.decode, sid, data)
                       for sid, data in items.items()}
            return {sid: f.result() for sid, f in futures.items()}

    def evict(self, sound_id: str) -> None:
        """Drop the cached buffer.  A voice already playing it keeps going."""
        with self._lock:
            self._buffers.pop(sound_id, None)

    def get_buffer(self, sound_id: str) -> PcmBuffer | None:
        with self._lock:
            return self._buffers.get(sound_id)

    def is_cached(self, sound_id: str) -> bool:
        with self._lock:
            return sound_id in self._buffers

    # ------------------------------------------------------------------
    # Voices
    # ------------------------------------------------------------------

    def play(
        self,
        sound_id: str,
        volume: float | None = None,
        loop: bool = False,
    ) -> bool:
        """Start *sound_id*.

        Returns False, without raising, when the polyphony ceiling is
        reached, the sound is already playing, nothing is cached for it, or
        the output device refuses to start.
        """
        self.release_finished()
        gain = self.default_volume if volume is None else float(volume)
        gain = min(max(gain, 0.0), 1.0)

        with self._lock:
            if len(self._voices) >= self.max_concurrent or sound_id in self._voices:
                return False
            buffer = self._buffers.get(sound_id)
            if buffer is None:
                return False

            voice = Voice(sound_id=sound_id, buffer=buffer, gain=gain, loop=loop)
            self._voices[sound_id] = voice
            try:
                voice.handle = self.output.create_voice(
                    buffer,
                    gain=gain,
                    loop=loop,
                    on_finished=lambda: self._on_voice_finished(voice),
                )
                voice.handle.start()
            except PlaybackError as e:
                if self._voices.get(sound_id) is voice:
                    del self._voices[sound_id]
                log.warning("Could not start %s: %s", sound_id, e)
                return False

        log.debug("voice start %s (gain %.2f, loop %s)", sound_id, gain, loop)
        self._emit("voice.start", sound_id=sound_id, gain=gain, loop=loop)
        return True

    def _on_voice_finished(self, voice: Voice) -> None:
        # an empty buffer cannot loop, so its voice ends like any other
        if voice.loop and voice.buffer.frames > 0:
            return
        with self._lock:
            if self._voices.get(voice.sound_id) is not voice:
                return
            del self._voices[voice.sound_id]
            self._finished.append(voice.handle)
        log.debug("voice finished %s", voice.sound_id)
        self._emit("voice.end", sound_id=voice.sound_id, reason="finished")

    def _halt(self, voice: Voice) -> None:
        # halt() reports False for an already stopped voice; nothing to do
        if voice.handle is not None and not voice.handle.halt():
            log.debug("voice %s had already stopped", voice.sound_id)
        self._emit("voice.end", sound_id=voice.sound_id, reason="stopped")

    def stop(self, sound_id: str) -> None:
        """Stop *sound_id*.  Unknown or idle IDs are ignored."""
        self.release_finished()
        with self._lock:
            voice = self._voices.pop(sound_id, None)
        if voice is not None:
            self._halt(voice)

    def stop_all(self) -> None:
        self.release_finished()
        with self._lock:
            voices = list(self._voices.values())
            self._voices.clear()
        for voice in voices:
            self._halt(voice)

    def is_playing(self, sound_id: str) -> bool:
        with self._lock:
            return sound_id in self._voices

    def active_sounds(self) -> frozenset[str]:
        """IDs of every sound currently playing."""
        with self._lock:
            return frozenset(self._voices)

    # ------------------------------------------------------------------
    # Preview slot
    # ------------------------------------------------------------------

    def preview_buffer(
        self,
        buffer: PcmBuffer,
        start_sec: float = 0.0,
        duration_sec: float | None = None,
    ) -> None:
        """Audition *buffer* (or a part of it) on the preview slot.

        Replaces any running preview.  Not counted against the polyphony
        ceiling and not listed in :meth:`active_sounds`.

        Raises:
            PlaybackError: the output device could not start.
        """
        self.release_finished()
        self.stop_preview()
        sr = buffer.samplerate
        start_frame = max(0, int(round(start_sec * sr)))
        frame_count = None if duration_sec is None else max(0, int(round(duration_sec * sr)))

        handle: VoiceHandle | None = None

        def finished():
            with self._lock:
                if self._preview is handle:
                    self._preview = None
                    self._finished.append(handle)

        handle = self.output.create_voice(
            buffer,
            gain=1.0,
            loop=False,
            start_frame=start_frame,
            frame_count=frame_count,
            on_finished=finished,
        )
        with self._lock:
            self._preview = handle
            try:
                handle.start()
            except PlaybackError:
                self._preview = None
                raise
        self._emit("preview.start", duration_sec=(
            duration_sec if duration_sec is not None
            else max(0.0, buffer.duration_sec - start_sec)
        ))

    def stop_preview(self) -> None:
        with self._lock:
            handle = self._preview
            self._preview = None
        if handle is not None:
            handle.halt()

    @property
    def is_previewing(self) -> bool:
        with self._lock:
            return self._preview is not None

    def close(self) -> None:
        """Stop every voice, including the preview."""
        self.stop_all()
        self.stop_preview()
