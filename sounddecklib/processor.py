from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from .config import ParamSpec
from .models import PcmBuffer, ProcessorResult


# Priority band constants.  Stages run in ascending priority: trim before
# normalize (silence must not affect the peak), fade after normalize.
PRIORITY_CLEANUP = 0
PRIORITY_NORMALIZE = 100
PRIORITY_FINALIZE = 900


class AudioProcessor(ABC):
    """
    One stage of the ingestion chain.
    process() inspects a buffer and reports what it would do.
    apply() returns the transformed buffer; the input is never modified.
    """
    id: str = ""
    name: str = ""
    priority: int = PRIORITY_NORMALIZE

    def __init__(self) -> None:
        self.configure({})

    @classmethod
    def config_params(cls) -> list[ParamSpec]:
        """Return parameter specifications for this processor."""
        return []

    def configure(self, config: dict[str, Any]) -> None:
        pass

    @abstractmethod
    def process(self, buffer: PcmBuffer) -> ProcessorResult:
        """
        Decide what to do.  Pure analysis, usable for dry runs.
        """
        ...

    @abstractmethod
    def apply(self, buffer: PcmBuffer, result: ProcessorResult) -> PcmBuffer:
        """
        Apply the transformation described by *result*.
        Returns a new buffer (or *buffer* itself when there is nothing to do).
        """
        ...

    def run(self, buffer: PcmBuffer) -> tuple[PcmBuffer, ProcessorResult]:
        result = self.process(buffer)
        if result.skipped:
            return buffer, result
        return self.apply(buffer, result), result
