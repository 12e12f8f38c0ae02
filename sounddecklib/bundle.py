"""Export/import of a whole sound library as one ``.sounddeck`` JSON file.

Layout::

    {
        "version": 2,
        "exportDate": "2024-05-01T12:00:00+00:00",
        "banks": ["Main", ...],
        "sounds": [
            {"id": ..., "name": ..., "icon": ..., "category": ...,
             "color": ..., "volume": 80, "bank": ..., "order": 0,
             "loopDefault": false,
             "audioBase64": "<WAV bytes>" | null, "mimeType": "audio/wav"},
            ...
        ]
    }
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Iterator
from uuid import uuid4

from .engine import PlaybackEngine
from .models import SoundMeta
from .store import SoundStore

log = logging.getLogger(__name__)

EXPORT_VERSION = 2
BUNDLE_SUFFIX = ".sounddeck"


class BundleError(Exception):
    """Raised when an export bundle cannot be read."""
    pass


def meta_to_record(meta: SoundMeta) -> dict[str, Any]:
    return {
        "id": meta.id,
        "name": meta.name,
        "icon": meta.icon,
        "category": meta.category,
        "color": meta.color,
        "volume": meta.volume,
        "bank": meta.bank,
        "order": meta.order,
        "loopDefault": meta.loop_default,
    }


def record_to_meta(record: dict[str, Any]) -> SoundMeta:
    """Raises TypeError or ValueError when a numeric field holds junk."""
    return SoundMeta(
        id=str(record.get("id") or uuid4()),
        name=str(record.get("name") or ""),
        icon=record.get("icon") or "\U0001F50A",
        category=record.get("category") or "All",
        color=record.get("color") or "red",
        volume=int(record.get("volume") or 80),
        bank=record.get("bank") or "Main",
        order=int(record.get("order") or 0),
        loop_default=bool(record.get("loopDefault")),
    )


def export_bundle(
    sounds: list[SoundMeta],
    store: SoundStore,
    banks: list[str] | None = None,
) -> dict[str, Any]:
    """Build the bundle dict.  Sounds without stored audio are kept with
    ``audioBase64: null``."""
    records = []
    for meta in sounds:
        data = store.load(meta.id)
        record = meta_to_record(meta)
        record["audioBase64"] = (
            base64.b64encode(data).decode("ascii") if data is not None else None
        )
        record["mimeType"] = "audio/wav"
        records.append(record)
    return {
        "version": EXPORT_VERSION,
        "exportDate": datetime.now(timezone.utc).isoformat(),
        "banks": list(banks or ["Main"]),
        "sounds": records,
    }


def write_bundle(path: str, bundle: dict[str, Any]) -> None:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(bundle, f, ensure_ascii=False)


def parse_bundle(text: str) -> dict[str, Any]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise BundleError(f"Invalid bundle: {e}")
    if not isinstance(data, dict):
        raise BundleError(f"Bundle must be a JSON object, got {type(data).__name__}")
    if not data.get("sounds"):
        raise BundleError("No sounds in bundle")
    return data


def read_bundle(path: str) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            text = f.read()
    except OSError as e:
        raise BundleError(f"Cannot read bundle {path}: {e}")
    return parse_bundle(text)


def iter_bundle_sounds(bundle: dict[str, Any]) -> Iterator[tuple[SoundMeta, bytes]]:
    """Yield ``(meta, audio_bytes)`` for every record that carries audio.

    A malformed record is logged and skipped; the rest still import.
    """
    for index, record in enumerate(bundle.get("sounds", [])):
        if not isinstance(record, dict):
            log.warning("Skipping sound #%d: not an object", index)
            continue
        encoded = record.get("audioBase64")
        if not encoded:
            continue
        try:
            data = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError, TypeError) as e:
            log.warning("Skipping %r: bad audio payload (%s)",
                        record.get("name"), e)
            continue
        try:
            meta = record_to_meta(record)
        except (TypeError, ValueError) as e:
            log.warning("Skipping %r: bad field value (%s)",
                        record.get("name"), e)
            continue
        yield meta, data


def import_bundle(
    bundle: dict[str, Any],
    store: SoundStore,
    engine: PlaybackEngine | None = None,
    existing: list[SoundMeta] | None = None,
    replace: bool = False,
) -> list[SoundMeta]:
    """Store every sound in *bundle* and return the resulting metadata.

    Names are matched case-insensitively against *existing*.  Without
    *replace*, sounds whose name already exists are skipped.  With
    *replace*, the existing sound keeps its ID and gets the new audio and
    display settings.  Imported sounds get fresh IDs.
    """
    by_name = {m.name.lower(): m for m in (existing or [])}
    imported: list[SoundMeta] = []

    for meta, data in iter_bundle_sounds(bundle):
        match = by_name.get(meta.name.lower())
        if match is not None and not replace:
            continue

        if match is not None:
            target = match
            target.icon = meta.icon
            target.category = meta.category
            target.color = meta.color
            target.volume = meta.volume
            target.bank = meta.bank
        else:
            target = meta
            target.id = str(uuid4())

        store.save(target.id, data)
        if engine is not None:
            engine.evict(target.id)
            engine.decode(target.id, data)
        imported.append(target)

    log.info("imported %d sounds", len(imported))
    return imported
