from .trim_silence import TrimSilenceProcessor
from .peak_normalize import PeakNormalizeProcessor
from .fade import FadeProcessor


def default_processors():
    """Returns all built-in ingestion processors."""
    return [
        TrimSilenceProcessor(),
        PeakNormalizeProcessor(),
        FadeProcessor(),
    ]


__all__ = [
    "default_processors",
    "TrimSilenceProcessor",
    "PeakNormalizeProcessor",
    "FadeProcessor",
]
