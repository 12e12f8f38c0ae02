import pytest

from sounddecklib.codec import encode
from sounddecklib.engine import PlaybackEngine
from sounddecklib.models import PcmBuffer
from sounddecklib.output import PlaybackError

from conftest import SR, FakeOutput, Recorder, sine


@pytest.fixture
def loaded(engine, wav_bytes):
    """Engine with nine decoded sounds: s0 .. s8."""
    for i in range(9):
        assert engine.decode(f"s{i}", wav_bytes) is not None
    return engine


# ---------------------------------------------------------------------------
# Buffer cache
# ---------------------------------------------------------------------------

def test_decode_caches(engine, wav_bytes):
    buf = engine.decode("a", wav_bytes)
    assert buf.samplerate == SR
    assert engine.is_cached("a")
    assert engine.get_buffer("a") is buf


def test_decode_replaces_previous(engine, wav_bytes):
    engine.decode("a", wav_bytes)
    short = encode(PcmBuffer(SR, sine(440, 0.1)))
    engine.decode("a", short)
    assert engine.get_buffer("a").frames == 800


def test_decode_failure_keeps_cache(engine, event_bus, wav_bytes):
    rec = Recorder(event_bus, "decode.failed")
    engine.decode("a", wav_bytes)
    before = engine.get_buffer("a")

    assert engine.decode("a", b"RIFF\x00\x00\x00\x00JUNKJUNK") is None
    assert engine.decode("b", b"not audio") is None

    assert engine.get_buffer("a") is before
    assert not engine.is_cached("b")
    assert [e["sound_id"] for e in rec.of("decode.failed")] == ["a", "b"]


def test_decode_many(engine, wav_bytes):
    results = engine.decode_many({"a": wav_bytes, "b": b"junkjunkjunkjunk", "c": wav_bytes})
    assert results["a"] is not None
    assert results["b"] is None
    assert results["c"] is not None
    assert engine.is_cached("a") and engine.is_cached("c")


def test_decode_many_empty(engine):
    assert engine.decode_many({}) == {}


def test_evict(engine, wav_bytes):
    engine.decode("a", wav_bytes)
    engine.evict("a")
    engine.evict("missing")
    assert not engine.is_cached("a")
    assert engine.play("a") is False


# ---------------------------------------------------------------------------
# Play
# ---------------------------------------------------------------------------

def test_play_starts_voice(loaded, output, event_bus):
    rec = Recorder(event_bus, "voice.start")
    assert loaded.play("s0") is True

    assert loaded.is_playing("s0")
    assert loaded.active_sounds() == frozenset({"s0"})
    voice = output.voices[-1]
    assert voice.started
    assert voice.gain == pytest.approx(0.8)
    assert voice.loop is False
    assert rec.of("voice.start") == [{"sound_id": "s0", "gain": 0.8, "loop": False}]


@pytest.mark.parametrize("volume, gain", [(0.3, 0.3), (1.5, 1.0), (-0.2, 0.0)])
def test_play_clamps_volume(loaded, output, volume, gain):
    loaded.play("s0", volume=volume)
    assert output.voices[-1].gain == pytest.approx(gain)


def test_play_unknown_id(engine, output):
    assert engine.play("nope") is False
    assert output.voices == []


def test_play_duplicate_is_rejected(loaded, output):
    assert loaded.play("s0") is True
    assert loaded.play("s0") is False
    assert len(output.voices) == 1


def test_polyphony_ceiling(loaded):
    for i in range(8):
        assert loaded.play(f"s{i}") is True
    assert loaded.play("s8") is False
    assert len(loaded.active_sounds()) == 8

    loaded.stop("s3")
    assert loaded.play("s8") is True
    assert len(loaded.active_sounds()) == 8


def test_ceiling_from_config(output, wav_bytes):
    engine = PlaybackEngine(output=output, config={"max_concurrent": 2})
    for sid in "abc":
        engine.decode(sid, wav_bytes)
    assert engine.play("a") and engine.play("b")
    assert engine.play("c") is False


def test_start_failure_returns_false(loaded, output):
    output.fail_start = True
    assert loaded.play("s0") is False
    assert not loaded.is_playing("s0")

    output.fail_start = False
    assert loaded.play("s0") is True


def test_output_creation_failure_returns_false(wav_bytes):
    class BrokenOutput(FakeOutput):
        def create_voice(self, buffer, **kwargs):
            raise PlaybackError("no device")

    engine = PlaybackEngine(output=BrokenOutput())
    engine.decode("a", wav_bytes)
    assert engine.play("a") is False
    assert engine.active_sounds() == frozenset()


# ---------------------------------------------------------------------------
# Completion and stopping
# ---------------------------------------------------------------------------

def test_natural_completion_removes_voice(loaded, output, event_bus):
    rec = Recorder(event_bus, "voice.end")
    loaded.play("s0")
    output.voices[-1].finish()

    assert not loaded.is_playing("s0")
    assert rec.of("voice.end") == [{"sound_id": "s0", "reason": "finished"}]
    assert loaded.play("s0") is True


def test_looping_voice_survives_completion(loaded, output):
    loaded.play("s0", loop=True)
    output.voices[-1].finish()
    assert loaded.is_playing("s0")
    assert output.voices[-1].loop is True


def test_stale_completion_does_not_remove_new_voice(loaded, output):
    loaded.play("s0")
    first = output.voices[-1]
    loaded.stop("s0")
    loaded.play("s0")

    first.finish()

    assert loaded.is_playing("s0")


def test_stop(loaded, output, event_bus):
    rec = Recorder(event_bus, "voice.end")
    loaded.play("s0")
    loaded.stop("s0")

    assert not loaded.is_playing("s0")
    assert not output.voices[-1].running
    assert rec.of("voice.end") == [{"sound_id": "s0", "reason": "stopped"}]


def test_stop_is_idempotent(loaded, output):
    loaded.play("s0")
    loaded.stop("s0")
    loaded.stop("s0")
    loaded.stop("never-played")
    assert output.voices[-1].halt_calls == 1


def test_stop_after_natural_end_is_noop(loaded, output):
    loaded.play("s0")
    voice = output.voices[-1]
    voice.finish()
    loaded.stop("s0")
    assert voice.halt_calls == 0


def test_finished_voice_released_on_next_call(loaded, output):
    loaded.play("s0")
    voice = output.voices[-1]
    voice.finish()
    assert voice.release_calls == 0

    loaded.play("s1")
    assert voice.release_calls == 1
    assert voice.halt_calls == 0

    loaded.stop("s1")
    assert voice.release_calls == 1


def test_release_finished_counts(loaded, output, tone_buffer):
    loaded.play("s0")
    loaded.play("s1")
    loaded.preview_buffer(tone_buffer)
    for voice in output.voices:
        voice.finish()

    assert loaded.release_finished() == 3
    assert loaded.release_finished() == 0
    assert all(v.release_calls == 1 for v in output.voices)


def test_stopped_voice_not_released_twice(loaded, output):
    loaded.play("s0")
    voice = output.voices[-1]
    loaded.stop("s0")
    voice.finish()

    assert loaded.release_finished() == 0


def test_empty_looping_voice_ends(engine, output):
    engine.decode("empty", encode(PcmBuffer.silence(SR, 0)))
    assert engine.play("empty", loop=True) is True

    output.voices[-1].finish()

    assert not engine.is_playing("empty")
    assert engine.active_sounds() == frozenset()


def test_stop_all(loaded, output):
    for i in range(5):
        loaded.play(f"s{i}", loop=i % 2 == 0)
    loaded.stop_all()

    assert loaded.active_sounds() == frozenset()
    assert all(not v.running for v in output.voices)


def test_evict_does_not_stop_playing_voice(loaded, output):
    loaded.play("s0")
    loaded.evict("s0")

    assert loaded.is_playing("s0")
    assert output.voices[-1].running
    assert output.voices[-1].buffer is not None


# ---------------------------------------------------------------------------
# Preview slot
# ---------------------------------------------------------------------------

def test_preview_not_counted(loaded, output, tone_buffer):
    for i in range(8):
        loaded.play(f"s{i}")
    loaded.preview_buffer(tone_buffer)

    assert loaded.is_previewing
    assert len(loaded.active_sounds()) == 8
    assert output.voices[-1].gain == 1.0


def test_preview_replaces_previous(engine, output, tone_buffer):
    engine.preview_buffer(tone_buffer)
    first = output.voices[-1]
    engine.preview_buffer(tone_buffer, 0.5, 0.25)
    second = output.voices[-1]

    assert not first.running
    assert second.running
    assert second.start_frame == 4000
    assert second.frame_count == 2000


def test_preview_finish_clears_slot(engine, output, tone_buffer):
    engine.preview_buffer(tone_buffer)
    output.voices[-1].finish()
    assert not engine.is_previewing


def test_stale_preview_finish_keeps_new_preview(engine, output, tone_buffer):
    engine.preview_buffer(tone_buffer)
    first = output.voices[-1]
    engine.preview_buffer(tone_buffer)

    first.finish()

    assert engine.is_previewing


def test_preview_start_failure(engine, output, tone_buffer):
    output.fail_start = True
    with pytest.raises(PlaybackError):
        engine.preview_buffer(tone_buffer)
    assert not engine.is_previewing


def test_stop_preview_is_idempotent(engine, output, tone_buffer):
    engine.preview_buffer(tone_buffer)
    engine.stop_preview()
    engine.stop_preview()
    assert not engine.is_previewing
    assert output.voices[-1].halt_calls == 1


def test_close_stops_everything(loaded, output, tone_buffer):
    loaded.play("s0", loop=True)
    loaded.preview_buffer(tone_buffer)
    loaded.close()

    assert loaded.active_sounds() == frozenset()
    assert not loaded.is_previewing
    assert all(not v.running for v in output.voices)
