from __future__ import annotations

import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Iterable

from .codec import DecodeError, decode, encode
from .config import ConfigError
from .events import EventBus
from .models import IngestResult, PcmBuffer, ProcessingOptions, ProcessorResult
from .processor import AudioProcessor
from .processors import default_processors

log = logging.getLogger(__name__)


class IngestPipeline:
    """Turns uploaded or recorded audio into a clip ready for storage.

    decode → trim → normalize → fade → encode.  Stages run in ascending
    priority; :class:`ProcessingOptions` switches individual stages off
    without changing the order of the rest.
    """

    def __init__(
        self,
        processors: list[AudioProcessor] | None = None,
        config: dict[str, Any] | None = None,
        event_bus: EventBus | None = None,
        max_workers: int | None = None,
    ):
        self.config = config or {}
        self.event_bus = event_bus
        self.max_workers = max_workers or min(os.cpu_count() or 4, 8)

        all_procs = processors if processors is not None else default_processors()
        for p in all_procs:
            p.configure(self.config)
        self.processors: list[AudioProcessor] = sorted(
            all_procs, key=lambda p: p.priority,
        )

        self._validate()

    def _validate(self):
        """Validate pipeline configuration at construction time."""
        seen = set()
        for p in self.processors:
            if p.id in seen:
                raise ConfigError(f"Duplicate processor ID: {p.id}")
            seen.add(p.id)

    def _emit(self, event_type: str, **data):
        if self.event_bus:
            self.event_bus.emit(event_type, **data)

    # ------------------------------------------------------------------
    # Single buffer / single file
    # ------------------------------------------------------------------

    def run_stages(
        self,
        buffer: PcmBuffer,
        options: ProcessingOptions | None = None,
    ) -> tuple[PcmBuffer, list[ProcessorResult]]:
        """Run the enabled stages over an already decoded buffer."""
        enabled = (options or ProcessingOptions()).enabled_ids()
        results: list[ProcessorResult] = []
        for proc in self.processors:
            if proc.id not in enabled:
                continue
            buffer, result = proc.run(buffer)
            log.debug("%s: %s", proc.id, result.method)
            results.append(result)
        return buffer, results

    def process(
        self,
        data: bytes,
        options: ProcessingOptions | None = None,
        name: str = "",
    ) -> IngestResult:
        """Decode, transform and re-encode one file.

        Raises:
            DecodeError: *data* is not decodable audio.
        """
        t0 = time.perf_counter()
        buffer = decode(data)
        buffer, results = self.run_stages(buffer, options)
        encoded = encode(buffer)
        dt = (time.perf_counter() - t0) * 1000
        log.debug("ingested %s: %d frames in %.1f ms",
                  name or "<bytes>", buffer.frames, dt)
        return IngestResult(
            name=name,
            data=encoded,
            buffer=buffer,
            processor_results=results,
        )

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    def _process_item(self, name: str, data: bytes,
                      options: ProcessingOptions | None,
                      idx: int, total: int) -> IngestResult:
        self._emit("ingest.start", name=name, index=idx, total=total)
        max_size = self.config.get("max_file_size")
        if max_size is not None and len(data) > max_size:
            result = IngestResult(
                name=name,
                error=f"file too large ({len(data)} bytes, limit {max_size})",
            )
        else:
            try:
                result = self.process(data, options, name=name)
            except DecodeError as e:
                log.warning("Failed to decode %s: %s", name, e)
                result = IngestResult(name=name, error=str(e))
        self._emit("ingest.complete", name=name, index=idx, total=total,
                   error=result.error)
        return result

    def process_many(
        self,
        files: Iterable[tuple[str, bytes]],
        options: ProcessingOptions | None = None,
    ) -> list[IngestResult]:
        """Ingest several ``(name, bytes)`` files concurrently.

        Failures are reported per file in :attr:`IngestResult.error`; one bad
        upload never aborts the batch.  Results keep the input order.
        """
        items = list(files)
        total = len(items)
        if not items:
            return []

        results: list[IngestResult | None] = [None] * total
        workers = min(self.max_workers, total)
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {
                pool.submit(self._process_item, name, data, options, idx, total): idx
                for idx, (name, data) in enumerate(items)
            }
            for future in as_completed(futures):
                results[futures[future]] = future.result()
        return results  # type: ignore[return-value]


def process_file(
    file_bytes: bytes,
    options: ProcessingOptions | None = None,
    config: dict[str, Any] | None = None,
) -> bytes:
    """Decode *file_bytes*, apply the enabled stages and return WAV bytes.

    Raises:
        DecodeError: *file_bytes* is not decodable audio.
    """
    return IngestPipeline(config=config).process(file_bytes, options).data
