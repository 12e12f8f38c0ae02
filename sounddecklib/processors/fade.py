from __future__ import annotations

from typing import Any

from ..audio import fade_in_out
from ..config import ParamSpec
from ..models import PcmBuffer, ProcessorResult
from ..processor import AudioProcessor, PRIORITY_FINALIZE


class FadeProcessor(AudioProcessor):
    """Linear fade-in/fade-out to remove clicks at clip boundaries."""

    id = "fade"
    name = "Fade In/Out"
    priority = PRIORITY_FINALIZE  # after normalization, so the ramp survives

    @classmethod
    def config_params(cls) -> list[ParamSpec]:
        return [
            ParamSpec(
                key="fade_ms", type=(int, float), default=15.0, min=0.0,
                label="Fade length (ms)",
            ),
        ]

    def configure(self, config: dict[str, Any]) -> None:
        self.ms = config.get("fade_ms", 15.0)

    def process(self, buffer: PcmBuffer) -> ProcessorResult:
        samples = int(round(buffer.samplerate * self.ms / 1000.0))
        return ProcessorResult(
            processor_id=self.id,
            method=f"fade {self.ms:g} ms",
            data={"ramp_frames": min(samples, buffer.frames)},
            skipped=samples == 0,
        )

    def apply(self, buffer: PcmBuffer, result: ProcessorResult) -> PcmBuffer:
        return fade_in_out(buffer, self.ms)
