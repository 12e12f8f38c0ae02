"""RIFF/WAVE container codec and tone synthesis.

Encoding always produces a canonical 44-byte-header, 16-bit PCM file.
Decoding walks the RIFF chunk list and accepts integer PCM (8/16/24/32-bit)
and IEEE float (32/64-bit), plain or wrapped in WAVE_FORMAT_EXTENSIBLE.
Anything that is not a RIFF container is handed to libsndfile, so uploads
in FLAC, OGG or AIFF decode too.
"""

from __future__ import annotations

import io
import logging
import struct

import numpy as np
import soundfile as sf

from .models import PcmBuffer, Waveform

log = logging.getLogger(__name__)

WAV_HEADER_SIZE = 44
TONE_SAMPLERATE = 44100
TONE_GAIN = 0.5

FORMAT_PCM = 0x0001
FORMAT_IEEE_FLOAT = 0x0003
FORMAT_EXTENSIBLE = 0xFFFE

_INT16_SCALE = 32767.0

# Positive full-scale value per integer bit depth.  Decoding divides by the
# same value encoding multiplies by, so 16-bit round trips stay within one
# quantization step.
_INT_FULL_SCALE = {
    8: 127.0,
    16: 32767.0,
    24: 8388607.0,
    32: 2147483647.0,
}


class DecodeError(Exception):
    """Raised when audio bytes are malformed or use an unsupported format."""
    pass


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------

def wav_header(samplerate: int, channels: int, data_size: int) -> bytes:
    """Return the canonical 44-byte header for 16-bit PCM data."""
    block_align = channels * 2
    byte_rate = samplerate * block_align
    return (
        b"RIFF"
        + struct.pack("<I", 36 + data_size)
        + b"WAVE"
        + b"fmt "
        + struct.pack("<IHHIIHH", 16, FORMAT_PCM, channels, samplerate,
                      byte_rate, block_align, 16)
        + b"data"
        + struct.pack("<I", data_size)
    )


def _quantize16(samples: np.ndarray) -> bytes:
    """Clamp to [-1, 1], scale by 32767, round and pack little-endian int16."""
    clipped = np.clip(samples.astype(np.float64), -1.0, 1.0)
    return np.round(clipped * _INT16_SCALE).astype("<i2").tobytes()


def encode(buffer: PcmBuffer) -> bytes:
    """Encode *buffer* as a 16-bit PCM WAV file.

    Frames are written interleaved (L, R, L, R, ...) which is exactly the
    row-major layout of ``buffer.data``.
    """
    payload = _quantize16(buffer.data)
    return wav_header(buffer.samplerate, buffer.channels, len(payload)) + payload


def synthesize_tone(
    frequency: float,
    waveform: Waveform | str,
    duration_sec: float,
) -> bytes:
    """Render a decaying tone straight to WAV bytes (44.1 kHz, mono, 16-bit).

    The waveform is shaped by a linear decay ``max(0, 1 - t / duration)``
    and an overall gain of 0.5.
    """
    if frequency <= 0:
        raise ValueError(f"Tone frequency must be positive, got {frequency}")
    if duration_sec <= 0:
        raise ValueError(f"Tone duration must be positive, got {duration_sec}")
    wave = Waveform.parse(waveform)

    length = int(round(TONE_SAMPLERATE * duration_sec))
    t = np.arange(length, dtype=np.float64) / TONE_SAMPLERATE
    envelope = np.maximum(0.0, 1.0 - t / duration_sec)
    samples = wave.sample_fn(frequency * t) * envelope * TONE_GAIN

    payload = _quantize16(samples)
    log.debug("synthesized %s tone %.1f Hz, %d samples",
              wave.value, frequency, length)
    return wav_header(TONE_SAMPLERATE, 1, len(payload)) + payload


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

def _iter_chunks(data: bytes):
    """Yield ``(chunk_id, payload_offset, payload_size)`` for a RIFF blob.

    Chunks are padded to even boundaries.  A declared RIFF size that does
    not fit the blob (common for streamed recordings) is ignored and the
    whole blob is walked instead.
    """
    riff_size = struct.unpack("<I", data[4:8])[0]
    container_end = riff_size + 8
    if riff_size < 4 or container_end > len(data):
        container_end = len(data)

    pos = 12
    while pos + 8 <= container_end:
        chunk_id = data[pos:pos + 4].decode("ascii", errors="replace")
        chunk_size = struct.unpack("<I", data[pos + 4:pos + 8])[0]
        yield chunk_id, pos + 8, chunk_size
        pos += 8 + chunk_size
        if chunk_size % 2:
            pos += 1


def _parse_fmt(fmt: bytes) -> tuple[int, int, int, int]:
    """Return ``(format_code, channels, samplerate, bits_per_sample)``."""
    if len(fmt) < 16:
        raise DecodeError(f"fmt chunk too short ({len(fmt)} bytes)")
    format_code, channels, samplerate, _byte_rate, _block_align, bits = (
        struct.unpack("<HHIIHH", fmt[:16])
    )
    if format_code == FORMAT_EXTENSIBLE:
        if len(fmt) < 26:
            raise DecodeError("WAVE_FORMAT_EXTENSIBLE fmt chunk too short")
        # First two bytes of the SubFormat GUID carry the real format code
        format_code = struct.unpack("<H", fmt[24:26])[0]
    return format_code, channels, samplerate, bits


def _pcm_to_float(raw: bytes, format_code: int, bits: int) -> np.ndarray:
    if format_code == FORMAT_PCM:
        if bits == 8:
            ints = np.frombuffer(raw, dtype=np.uint8).astype(np.float64) - 128.0
        elif bits == 16:
            ints = np.frombuffer(raw, dtype="<i2").astype(np.float64)
        elif bits == 24:
            b = np.frombuffer(raw, dtype=np.uint8).reshape(-1, 3).astype(np.int32)
            packed = b[:, 0] | (b[:, 1] << 8) | (b[:, 2] << 16)
            ints = np.where(packed >= 1 << 23, packed - (1 << 24), packed)
            ints = ints.astype(np.float64)
        elif bits == 32:
            ints = np.frombuffer(raw, dtype="<i4").astype(np.float64)
        else:
            raise DecodeError(f"Unsupported PCM bit depth: {bits}")
        samples = ints / _INT_FULL_SCALE[bits]
    elif format_code == FORMAT_IEEE_FLOAT:
        if bits == 32:
            samples = np.frombuffer(raw, dtype="<f4").astype(np.float64)
        elif bits == 64:
            samples = np.frombuffer(raw, dtype="<f8")
        else:
            raise DecodeError(f"Unsupported float bit depth: {bits}")
    else:
        raise DecodeError(f"Unsupported WAV format code: 0x{format_code:04x}")
    return np.clip(samples, -1.0, 1.0)


def _decode_riff(data: bytes) -> PcmBuffer:
    if data[8:12] != b"WAVE":
        raise DecodeError(f"RIFF form type is {data[8:12]!r}, expected b'WAVE'")

    fmt_info = None
    raw = None
    for chunk_id, offset, size in _iter_chunks(data):
        if chunk_id == "fmt ":
            fmt_info = _parse_fmt(data[offset:offset + size])
        elif chunk_id == "data":
            if offset + size > len(data):
                raise DecodeError(
                    f"data chunk truncated: declared {size} bytes, "
                    f"{len(data) - offset} present"
                )
            raw = data[offset:offset + size]
            break

    if fmt_info is None:
        raise DecodeError("Missing fmt chunk")
    if raw is None:
        raise DecodeError("Missing data chunk")

    format_code, channels, samplerate, bits = fmt_info
    if channels not in (1, 2):
        raise DecodeError(f"Unsupported channel count: {channels}")
    if samplerate <= 0:
        raise DecodeError(f"Invalid sample rate: {samplerate}")
    if bits % 8 or bits == 0:
        raise DecodeError(f"Unsupported bit depth: {bits}")

    frame_size = channels * bits // 8
    if len(raw) % frame_size:
        raise DecodeError(
            f"data chunk holds {len(raw)} bytes, not a whole number of "
            f"{frame_size}-byte frames"
        )

    samples = _pcm_to_float(raw, format_code, bits)
    return PcmBuffer(samplerate, samples.reshape(-1, channels))


def _decode_soundfile(data: bytes) -> PcmBuffer:
    try:
        samples, samplerate = sf.read(io.BytesIO(data), dtype="float32",
                                      always_2d=True)
    except RuntimeError as e:
        raise DecodeError(f"Unrecognised audio data: {e}") from e
    if samples.shape[1] not in (1, 2):
        raise DecodeError(f"Unsupported channel count: {samples.shape[1]}")
    return PcmBuffer(int(samplerate), np.clip(samples, -1.0, 1.0))


def decode(data: bytes) -> PcmBuffer:
    """Decode container bytes into a :class:`PcmBuffer`.

    Raises:
        DecodeError: malformed header, unsupported format or truncated data.
    """
    data = bytes(data)
    if len(data) < 12:
        raise DecodeError(f"Audio data too short ({len(data)} bytes)")
    if data[:4] == b"RIFF":
        return _decode_riff(data)
    return _decode_soundfile(data)
