from ._version import __version__
from .models import (
    Waveform,
    PcmBuffer,
    Segment,
    Region,
    ProcessingOptions,
    ProcessorResult,
    SoundMeta,
    IngestResult,
)
from .codec import DecodeError, decode, encode, synthesize_tone
from .audio import (
    trim_silence,
    normalize,
    fade_in_out,
    extract_region,
    detect_silences,
)
from .config import (
    default_config,
    merge_configs,
    validate_config,
    validate_config_fields,
    validate_param_values,
    load_preset,
    ConfigError,
    ConfigFieldError,
    ParamSpec,
    ENGINE_PARAMS,
    SEGMENT_PARAMS,
)
from .processors import default_processors
from .pipeline import IngestPipeline, process_file
from .output import AudioOutput, VoiceHandle, PlaybackError
from .engine import PlaybackEngine
from .events import EventBus
from .store import SoundStore, MemoryStore, DirectoryStore

__all__ = [
    "__version__",
    "Waveform",
    "PcmBuffer",
    "Segment",
    "Region",
    "ProcessingOptions",
    "ProcessorResult",
    "SoundMeta",
    "IngestResult",
    "DecodeError",
    "decode",
    "encode",
    "synthesize_tone",
    "trim_silence",
    "normalize",
    "fade_in_out",
    "extract_region",
    "detect_silences",
    "default_config",
    "merge_configs",
    "validate_config",
    "validate_config_fields",
    "validate_param_values",
    "load_preset",
    "ConfigError",
    "ConfigFieldError",
    "ParamSpec",
    "ENGINE_PARAMS",
    "SEGMENT_PARAMS",
    "default_processors",
    "IngestPipeline",
    "process_file",
    "AudioOutput",
    "VoiceHandle",
    "PlaybackError",
    "PlaybackEngine",
    "EventBus",
    "SoundStore",
    "MemoryStore",
    "DirectoryStore",
]
