"""The sound library: metadata manifest, demo seeding and cache warm-up."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from uuid import uuid4

from .bundle import meta_to_record, record_to_meta
from .codec import encode, synthesize_tone
from .config import ConfigError
from .engine import PlaybackEngine
from .models import PcmBuffer, SoundMeta, Waveform
from .store import SoundStore

log = logging.getLogger(__name__)

MANIFEST_NAME = "sounds.json"


@dataclass(frozen=True)
class DemoTone:
    name: str
    icon: str
    category: str
    color: str
    frequency: float
    waveform: Waveform
    duration_sec: float


DEMO_TONES: list[DemoTone] = [
    DemoTone("Air Horn", "\U0001F4EF", "Effects", "red", 440, Waveform.SQUARE, 0.8),
    DemoTone("Ding", "\U0001F514", "Alerts", "yellow", 880, Waveform.SINE, 0.5),
    DemoTone("Bass Drop", "\U0001F4A5", "Music", "purple", 80, Waveform.SAWTOOTH, 1.0),
    DemoTone("Laser", "⚡", "Effects", "blue", 1200, Waveform.SAWTOOTH, 0.3),
    DemoTone("Sad Trombone", "\U0001F3BA", "Funny", "orange", 300, Waveform.SQUARE, 1.2),
    DemoTone("Cymbal", "\U0001F941", "Music", "teal", 5000, Waveform.TRIANGLE, 0.6),
    DemoTone("Boing", "\U0001F3C0", "Funny", "green", 600, Waveform.SINE, 0.4),
    DemoTone("Alert", "\U0001F6A8", "Alerts", "red", 660, Waveform.SQUARE, 0.7),
    DemoTone("Click", "\U0001F446", "Effects", "pink", 2000, Waveform.SINE, 0.05),
]


def seed_demo_sounds(
    store: SoundStore,
    engine: PlaybackEngine | None = None,
    first_order: int = 0,
) -> list[SoundMeta]:
    """Synthesize every demo tone, store it and (optionally) cache it."""
    sounds: list[SoundMeta] = []
    for i, demo in enumerate(DEMO_TONES):
        data = synthesize_tone(demo.frequency, demo.waveform, demo.duration_sec)
        meta = SoundMeta(
            id=str(uuid4()),
            name=demo.name,
            icon=demo.icon,
            category=demo.category,
            color=demo.color,
            order=first_order + i,
        )
        store.save(meta.id, data)
        if engine is not None:
            engine.decode(meta.id, data)
        sounds.append(meta)
    log.info("seeded %d demo sounds", len(sounds))
    return sounds


def load_store(
    store: SoundStore,
    engine: PlaybackEngine,
) -> dict[str, PcmBuffer | None]:
    """Decode every stored sound into the engine cache.

    Returns the per-ID decode results; undecodable entries map to None.
    """
    items: dict[str, bytes] = {}
    for sound_id in store.ids():
        data = store.load(sound_id)
        if data is not None:
            items[sound_id] = data
    return engine.decode_many(items)


def add_sound(
    store: SoundStore,
    sounds: list[SoundMeta],
    name: str,
    buffer: PcmBuffer,
    engine: PlaybackEngine | None = None,
    **display,
) -> SoundMeta:
    """Encode *buffer*, store it under a fresh ID and append its metadata."""
    data = encode(buffer)
    meta = SoundMeta(id=str(uuid4()), name=name, order=len(sounds), **display)
    store.save(meta.id, data)
    if engine is not None:
        engine.decode(meta.id, data)
    sounds.append(meta)
    return meta


# ---------------------------------------------------------------------------
# Manifest (metadata sidecar for a DirectoryStore)
# ---------------------------------------------------------------------------

def read_manifest(path: str) -> list[SoundMeta]:
    """Load sound metadata from *path*.  A missing file is an empty library.

    Raises ConfigError if the file exists but cannot be parsed.
    """
    if not os.path.isfile(path):
        return []
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in manifest {path}: {e}")
    except OSError as e:
        raise ConfigError(f"Cannot read manifest {path}: {e}")
    if not isinstance(data, list):
        raise ConfigError(f"Manifest must contain a JSON list, got {type(data).__name__}")
    return [record_to_meta(r) for r in data if isinstance(r, dict)]


def write_manifest(path: str, sounds: list[SoundMeta]) -> None:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump([meta_to_record(m) for m in sounds], f, indent=4,
                  ensure_ascii=False)


def library_sounds(store: SoundStore, manifest: list[SoundMeta]) -> list[SoundMeta]:
    """Metadata for every stored sound.

    Stored IDs missing from *manifest* get a bare entry named after the ID;
    manifest entries without audio are dropped.
    """
    stored = set(store.ids())
    known = {m.id: m for m in manifest if m.id in stored}
    extra = [SoundMeta(id=sid, name=sid, order=len(known) + i)
             for i, sid in enumerate(sorted(stored - set(known)))]
    return sorted(known.values(), key=lambda m: m.order) + extra
