from __future__ import annotations

from typing import Any

from ..audio import trim_bounds
from ..config import ParamSpec
from ..models import PcmBuffer, ProcessorResult
from ..processor import AudioProcessor, PRIORITY_CLEANUP


class TrimSilenceProcessor(AudioProcessor):
    id = "trim_silence"
    name = "Trim Silence"
    priority = PRIORITY_CLEANUP

    @classmethod
    def config_params(cls) -> list[ParamSpec]:
        return [
            ParamSpec(
                key="trim_threshold", type=(int, float), default=0.02,
                min=0.0, max=1.0, min_exclusive=True,
                label="Trim threshold",
                description="Leading/trailing samples quieter than this "
                            "absolute amplitude are removed.",
            ),
            ParamSpec(
                key="trim_pad_ms", type=(int, float), default=10.0, min=0.0,
                label="Trim padding (ms)",
                description="Silence kept before the first and after the "
                            "last loud sample.",
            ),
        ]

    def configure(self, config: dict[str, Any]) -> None:
        self.threshold = config.get("trim_threshold", 0.02)
        self.pad_ms = config.get("trim_pad_ms", 10.0)

    def process(self, buffer: PcmBuffer) -> ProcessorResult:
        start, stop = trim_bounds(buffer, self.threshold, self.pad_ms)
        removed = buffer.frames - (stop - start)
        return ProcessorResult(
            processor_id=self.id,
            method=f"trim {removed} frames" if removed else "nothing to trim",
            data={"start": start, "stop": stop, "removed_frames": removed},
            skipped=removed == 0,
        )

    def apply(self, buffer: PcmBuffer, result: ProcessorResult) -> PcmBuffer:
        return PcmBuffer(buffer.samplerate,
                         buffer.data[result.data["start"]:result.data["stop"]])
