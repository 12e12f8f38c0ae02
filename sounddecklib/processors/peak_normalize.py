from __future__ import annotations

from typing import Any

from ..audio import NORMALIZE_FLOOR, NORMALIZE_TARGET, linear_to_db, normalize, peak
from ..config import ParamSpec
from ..models import PcmBuffer, ProcessorResult
from ..processor import AudioProcessor, PRIORITY_NORMALIZE


class PeakNormalizeProcessor(AudioProcessor):
    id = "normalize"
    name = "Peak Normalization"
    priority = PRIORITY_NORMALIZE

    @classmethod
    def config_params(cls) -> list[ParamSpec]:
        return [
            ParamSpec(
                key="normalize_target", type=(int, float),
                default=NORMALIZE_TARGET,
                min=0.0, max=1.0, min_exclusive=True,
                label="Normalization peak",
                description="Clips are scaled so their loudest sample reaches "
                            "this level. Clips already louder are left alone.",
            ),
        ]

    def configure(self, config: dict[str, Any]) -> None:
        self.target = config.get("normalize_target", NORMALIZE_TARGET)

    def process(self, buffer: PcmBuffer) -> ProcessorResult:
        p = peak(buffer)
        if p < NORMALIZE_FLOOR:
            return ProcessorResult(self.id, "skip (near silent)",
                                   data={"peak": p, "gain": 1.0}, skipped=True)
        if p > self.target:
            return ProcessorResult(self.id, "skip (already loud)",
                                   data={"peak": p, "gain": 1.0}, skipped=True)
        gain = self.target / p
        return ProcessorResult(
            processor_id=self.id,
            method=f"Peak → {linear_to_db(self.target):.1f} dBFS",
            data={"peak": p, "gain": gain, "gain_db": linear_to_db(gain)},
        )

    def apply(self, buffer: PcmBuffer, result: ProcessorResult) -> PcmBuffer:
        return normalize(buffer, self.target)
