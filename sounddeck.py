import os
import sys
import argparse
import logging
import threading

try:
    from rich.console import Console
    from rich.table import Table
    from rich.panel import Panel
    from rich.progress import Progress, SpinnerColumn, BarColumn, TextColumn
    from rich.logging import RichHandler
    from rich import box
except ImportError:
    print("Error: The 'rich' library is required for the CLI but not installed.", file=sys.stderr)
    print("Please install it with: pip install sounddeck[cli]", file=sys.stderr)
    sys.exit(1)

from sounddecklib import __version__
from sounddecklib.audio import detect_silences, format_duration, linear_to_db, peak
from sounddecklib.bundle import (
    BUNDLE_SUFFIX, BundleError, export_bundle, import_bundle, read_bundle,
    write_bundle,
)
from sounddecklib.capture import CaptureError, record_clip
from sounddecklib.chopper import auto_split
from sounddecklib.codec import DecodeError, decode, synthesize_tone
from sounddecklib.config import (
    ConfigError, default_config, load_preset, merge_configs, validate_config,
)
from sounddecklib.engine import PlaybackEngine
from sounddecklib.events import EventBus
from sounddecklib.library import (
    MANIFEST_NAME, library_sounds, read_manifest, seed_demo_sounds,
    write_manifest,
)
from sounddecklib.models import IngestResult, ProcessingOptions, Waveform
from sounddecklib.output import PlaybackError
from sounddecklib.pipeline import IngestPipeline
from sounddecklib.store import DirectoryStore

console = Console()
log = logging.getLogger("sounddeck")


def positive_float(value):
    fvalue = float(value)
    if fvalue <= 0:
        raise argparse.ArgumentTypeError("must be a positive number")
    return fvalue


def unit_float(value):
    fvalue = float(value)
    if not 0.0 <= fvalue <= 1.0:
        raise argparse.ArgumentTypeError("must be between 0 and 1")
    return fvalue


def parse_arguments(argv=None):
    parser = argparse.ArgumentParser(
        description="SoundDeck: soundboard clip tools",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument("--version", action="version",
                        version=f"sounddeck {__version__}")
    parser.add_argument("--config", type=str, default=None,
                        help="JSON preset overriding the built-in defaults")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    # process
    p = sub.add_parser("process", help="Trim, normalize and fade audio files into WAV clips",
                       formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    p.add_argument("files", nargs="+", help="Input audio files")
    p.add_argument("-o", "--output", default="processed", help="Output directory")
    p.add_argument("--no-trim", action="store_true", help="Skip silence trimming")
    p.add_argument("--no-normalize", action="store_true", help="Skip peak normalization")
    p.add_argument("--no-fade", action="store_true", help="Skip fade in/out")

    # tone
    p = sub.add_parser("tone", help="Synthesize a decaying test tone",
                       formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    p.add_argument("frequency", type=positive_float, help="Frequency (Hz)")
    p.add_argument("--waveform", choices=[w.value for w in Waveform], default="sine")
    p.add_argument("--duration", type=positive_float, default=0.5, help="Duration (s)")
    p.add_argument("-o", "--output", required=True, help="Output WAV file")

    # split
    p = sub.add_parser("split", help="Cut a recording into clips at silences",
                       formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    p.add_argument("file", help="Input audio file")
    p.add_argument("-o", "--output", required=True, help="Output directory")
    p.add_argument("--threshold", type=unit_float, default=None,
                   help="Silence amplitude threshold (default: from config)")
    p.add_argument("--min-silence", type=float, default=None,
                   help="Minimum gap between clips in seconds (default: from config)")

    # info
    p = sub.add_parser("info", help="Show format, level and segment count of a file")
    p.add_argument("file", help="Input audio file")

    # play
    p = sub.add_parser("play", help="Play an audio file",
                       formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    p.add_argument("file", help="Input audio file")
    p.add_argument("--volume", type=unit_float, default=None,
                   help="Gain 0..1 (default: from config)")
    p.add_argument("--loop", action="store_true", help="Loop until interrupted")

    # record
    p = sub.add_parser("record", help="Record a clip from the microphone",
                       formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    p.add_argument("-o", "--output", required=True, help="Output WAV file")
    p.add_argument("--duration", type=positive_float, default=3.0, help="Duration (s)")

    # demo
    p = sub.add_parser("demo", help="Seed a sound library with the demo tones")
    p.add_argument("store", help="Sound library directory")

    # export / import
    p = sub.add_parser("export", help="Export a sound library as a bundle")
    p.add_argument("store", help="Sound library directory")
    p.add_argument("-o", "--output", required=True,
                   help=f"Output bundle ({BUNDLE_SUFFIX})")

    p = sub.add_parser("import", help="Import a bundle into a sound library")
    p.add_argument("bundle", help=f"Input bundle ({BUNDLE_SUFFIX})")
    p.add_argument("store", help="Sound library directory")
    p.add_argument("--replace", action="store_true",
                   help="Overwrite sounds whose name already exists")

    return parser.parse_args(argv)


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def build_config(args) -> dict:
    config = default_config()
    if args.config:
        config = merge_configs(config, load_preset(args.config))
    validate_config(config)
    return config


def read_input(path: str, config: dict) -> bytes:
    """Read *path*, enforcing the upload size limit."""
    size = os.path.getsize(path)
    limit = config["max_file_size"]
    if size > limit:
        raise ValueError(f"{path} is too large ({size} bytes, limit {limit})")
    with open(path, "rb") as f:
        return f.read()


def _stem(path: str) -> str:
    return os.path.splitext(os.path.basename(path))[0]


def _write(path: str, data: bytes) -> None:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "wb") as f:
        f.write(data)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_process(args, config) -> int:
    options = ProcessingOptions(
        trim=not args.no_trim,
        normalize=not args.no_normalize,
        fade=not args.no_fade,
    )
    missing = [f for f in args.files if not os.path.isfile(f)]
    for f in missing:
        console.print(f"[bold red]Error:[/] File '{f}' not found.")
    files = [f for f in args.files if f not in missing]
    if not files:
        return 1

    event_bus = EventBus()
    pipeline = IngestPipeline(config=config, event_bus=event_bus)

    # Oversized files are rejected before reading; they show up as errors
    # in the table.
    items = []
    rejected = []
    for path in files:
        try:
            items.append((path, read_input(path, config)))
        except ValueError as e:
            rejected.append(IngestResult(path, error=str(e)))

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        console=console,
    ) as progress:
        task_id = progress.add_task("[cyan]Processing clips...", total=len(items))

        def on_ingest_complete(**data):
            progress.advance(task_id)
        event_bus.subscribe("ingest.complete", on_ingest_complete)

        results = rejected + pipeline.process_many(items, options)

        event_bus.unsubscribe("ingest.complete", on_ingest_complete)

    table = Table(box=box.ROUNDED, title="Processed Clips")
    table.add_column("File", style="cyan", max_width=40)
    table.add_column("Duration", justify="right")
    table.add_column("Stages", style="dim")
    table.add_column("Status", justify="right")

    failures = 0
    for result in results:
        if not result.ok:
            failures += 1
            table.add_row(os.path.basename(result.name), "\u2014", "\u2014",
                          f"[red]{result.error}[/]")
            continue
        out_path = os.path.join(args.output, _stem(result.name) + ".wav")
        _write(out_path, result.data)
        applied = [r.processor_id for r in result.processor_results if not r.skipped]
        table.add_row(
            os.path.basename(result.name),
            format_duration(result.buffer.frames, result.buffer.samplerate),
            ", ".join(applied) or "none",
            "[green]OK[/]",
        )

    console.print(table)
    console.print(f"\n[dim]Clips written to: {args.output}[/]")
    return 1 if failures else 0


def cmd_tone(args, config) -> int:
    data = synthesize_tone(args.frequency, args.waveform, args.duration)
    _write(args.output, data)
    console.print(f"[green]Wrote[/] {args.waveform} {args.frequency:g} Hz "
                  f"({args.duration:g} s) to {args.output}")
    return 0


def cmd_split(args, config) -> int:
    overrides = {}
    if args.threshold is not None:
        overrides["silence_threshold"] = args.threshold
    if args.min_silence is not None:
        overrides["min_silence_sec"] = args.min_silence
    config = merge_configs(config, overrides)
    validate_config(config)

    buffer = decode(read_input(args.file, config))
    clips = auto_split(buffer, config)
    if not clips:
        console.print(f"[yellow]No sound found in {args.file}[/]")
        return 1

    table = Table(box=box.ROUNDED, title="Auto-split")
    table.add_column("Clip", style="cyan")
    table.add_column("Start", justify="right")
    table.add_column("End", justify="right")
    table.add_column("File", style="dim")

    stem = _stem(args.file)
    for i, (region, data) in enumerate(clips, start=1):
        out_path = os.path.join(args.output, f"{stem}_{i:02d}.wav")
        _write(out_path, data)
        table.add_row(
            f"[{region.color}]{region.label}[/]",
            f"{region.start:.3f} s",
            f"{region.end:.3f} s",
            out_path,
        )
    console.print(table)
    return 0


def cmd_info(args, config) -> int:
    buffer = decode(read_input(args.file, config))
    segments = detect_silences(
        buffer,
        threshold=config["silence_threshold"],
        min_silence_sec=config["min_silence_sec"],
        min_segment_sec=config["min_segment_sec"],
    )
    pk = peak(buffer)

    table = Table(box=box.ROUNDED, title=os.path.basename(args.file),
                  show_header=False)
    table.add_column("Property", style="bold")
    table.add_column("Value", style="cyan")
    table.add_row("Sample rate", f"{buffer.samplerate} Hz")
    table.add_row("Channels", str(buffer.channels))
    table.add_row("Frames", str(buffer.frames))
    table.add_row("Duration", format_duration(buffer.frames, buffer.samplerate))
    table.add_row("Peak", f"{linear_to_db(pk):.1f} dBFS" if pk > 0 else "-inf dBFS")
    table.add_row("Segments", str(len(segments)))
    console.print(table)
    return 0


def cmd_play(args, config) -> int:
    event_bus = EventBus()
    engine = PlaybackEngine(event_bus=event_bus, config=config)
    sound_id = _stem(args.file) or "sound"
    if engine.decode(sound_id, read_input(args.file, config)) is None:
        console.print(f"[bold red]Error:[/] Could not decode '{args.file}'.")
        return 1

    done = threading.Event()

    def on_voice_end(**data):
        done.set()
    event_bus.subscribe("voice.end", on_voice_end)

    if not engine.play(sound_id, volume=args.volume, loop=args.loop):
        console.print("[bold red]Error:[/] Could not start playback.")
        return 1

    hint = " (Ctrl+C to stop)" if args.loop else ""
    console.print(f"[cyan]Playing[/] {args.file}{hint}")
    try:
        while not done.wait(0.1):
            pass
    except KeyboardInterrupt:
        console.print("[dim]Stopped.[/]")
    finally:
        engine.close()
    return 0


def cmd_record(args, config) -> int:
    console.print(f"[cyan]Recording {args.duration:g} s...[/]")
    data = record_clip(args.duration, config=config)
    _write(args.output, data)
    console.print(f"[green]Saved[/] {args.output}")
    return 0


def cmd_demo(args, config) -> int:
    store = DirectoryStore(args.store)
    manifest_path = os.path.join(args.store, MANIFEST_NAME)
    sounds = read_manifest(manifest_path)
    sounds.extend(seed_demo_sounds(store, first_order=len(sounds)))
    write_manifest(manifest_path, sounds)
    console.print(f"[green]Library now holds {len(sounds)} sounds[/]")
    return 0


def cmd_export(args, config) -> int:
    if not os.path.isdir(args.store):
        console.print(f"[bold red]Error:[/] Directory '{args.store}' not found.")
        return 1
    store = DirectoryStore(args.store)
    sounds = library_sounds(store, read_manifest(os.path.join(args.store, MANIFEST_NAME)))
    if not sounds:
        console.print(f"[yellow]No sounds in {args.store}[/]")
        return 1
    banks = sorted({s.bank for s in sounds})
    bundle = export_bundle(sounds, store, banks)
    write_bundle(args.output, bundle)
    console.print(f"[green]Exported {len(sounds)} sounds[/] to {args.output}")
    return 0


def cmd_import(args, config) -> int:
    bundle = read_bundle(args.bundle)
    store = DirectoryStore(args.store)
    manifest_path = os.path.join(args.store, MANIFEST_NAME)
    sounds = library_sounds(store, read_manifest(manifest_path))

    imported = import_bundle(bundle, store, existing=sounds, replace=args.replace)
    known = {id(m) for m in sounds}
    for meta in imported:
        if id(meta) not in known:
            meta.order = len(sounds)
            sounds.append(meta)
    write_manifest(manifest_path, sounds)
    console.print(f"[green]Imported {len(imported)} sounds[/] into {args.store}")
    return 0


COMMANDS = {
    "process": cmd_process,
    "tone": cmd_tone,
    "split": cmd_split,
    "info": cmd_info,
    "play": cmd_play,
    "record": cmd_record,
    "demo": cmd_demo,
    "export": cmd_export,
    "import": cmd_import,
}


def main(argv=None) -> int:
    args = parse_arguments(argv)
    setup_logging(args.verbose)

    try:
        config = build_config(args)
    except ConfigError as e:
        console.print(Panel.fit(str(e), title="Configuration", border_style="red"))
        return 2
    log.debug("running %s with config %s", args.command, config)

    try:
        return COMMANDS[args.command](args, config)
    except (DecodeError, CaptureError, PlaybackError, BundleError,
            ConfigError, ValueError, OSError) as e:
        console.print(f"[bold red]Error:[/] {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
