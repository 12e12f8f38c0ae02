import json
import os

import numpy as np
import pytest

pytest.importorskip("rich")

import sounddeck
from sounddecklib.codec import decode, encode
from sounddecklib.models import PcmBuffer

from conftest import SR, block, silence


@pytest.fixture
def hits_file(tmp_path):
    parts = []
    for level in (0.2, 0.4):
        parts += [silence(0.3), block(0.3, level)]
    parts.append(silence(0.3))
    path = tmp_path / "hits.wav"
    path.write_bytes(encode(PcmBuffer(SR, np.concatenate(parts))))
    return str(path)


def test_tone(tmp_path):
    out = tmp_path / "beep.wav"
    assert sounddeck.main(["tone", "440", "--waveform", "square",
                           "--duration", "0.25", "-o", str(out)]) == 0
    assert decode(out.read_bytes()).frames == 11025


def test_info(hits_file):
    assert sounddeck.main(["info", hits_file]) == 0


def test_info_missing_file(tmp_path):
    assert sounddeck.main(["info", str(tmp_path / "nope.wav")]) == 1


def test_info_undecodable(tmp_path):
    path = tmp_path / "junk.wav"
    path.write_bytes(b"RIFF\x04\x00\x00\x00JUNKJUNKJUNK")
    assert sounddeck.main(["info", str(path)]) == 1


def test_process(tmp_path, hits_file):
    out_dir = tmp_path / "out"
    assert sounddeck.main(["process", hits_file, "-o", str(out_dir)]) == 0

    clip = decode((out_dir / "hits.wav").read_bytes())
    assert clip.frames < SR * 1.5


def test_process_no_trim(tmp_path, hits_file):
    out_dir = tmp_path / "out"
    assert sounddeck.main(["process", hits_file, "-o", str(out_dir),
                           "--no-trim"]) == 0
    assert decode((out_dir / "hits.wav").read_bytes()).frames == int(SR * 1.5)


def test_process_reports_failures(tmp_path, hits_file):
    bad = tmp_path / "bad.wav"
    bad.write_bytes(b"definitely not audio data")
    out_dir = tmp_path / "out"

    assert sounddeck.main(["process", hits_file, str(bad), "-o", str(out_dir)]) == 1
    assert os.listdir(out_dir) == ["hits.wav"]


def test_split(tmp_path, hits_file):
    out_dir = tmp_path / "clips"
    assert sounddeck.main(["split", hits_file, "-o", str(out_dir)]) == 0
    assert sorted(os.listdir(out_dir)) == ["hits_01.wav", "hits_02.wav"]


def test_split_threshold_override(tmp_path, hits_file):
    out_dir = tmp_path / "clips"
    assert sounddeck.main(["split", hits_file, "-o", str(out_dir),
                           "--threshold", "0.3"]) == 0
    assert os.listdir(out_dir) == ["hits_01.wav"]


def test_demo_export_import(tmp_path):
    lib = str(tmp_path / "lib")
    bundle = str(tmp_path / "backup.sounddeck")
    other = str(tmp_path / "other")

    assert sounddeck.main(["demo", lib]) == 0
    assert sounddeck.main(["export", lib, "-o", bundle]) == 0
    with open(bundle, encoding="utf-8") as f:
        exported = json.load(f)["sounds"]
    assert len(exported) == 9

    assert sounddeck.main(["import", bundle, other]) == 0
    with open(os.path.join(other, "sounds.json"), encoding="utf-8") as f:
        manifest = json.load(f)
    assert sorted(m["name"] for m in manifest) == sorted(m["name"] for m in exported)

    # second import without --replace finds every name taken
    assert sounddeck.main(["import", bundle, other]) == 0
    with open(os.path.join(other, "sounds.json"), encoding="utf-8") as f:
        assert len(json.load(f)) == 9


def test_export_missing_store(tmp_path):
    assert sounddeck.main(["export", str(tmp_path / "nope"),
                           "-o", str(tmp_path / "x.sounddeck")]) == 1


def test_invalid_preset(tmp_path, hits_file):
    preset = tmp_path / "bad.json"
    preset.write_text(json.dumps({"max_concurrent": 0}))
    assert sounddeck.main(["--config", str(preset), "info", hits_file]) == 2


def test_preset_size_limit(tmp_path, hits_file):
    preset = tmp_path / "tiny.json"
    preset.write_text(json.dumps({"max_file_size": 10}))
    assert sounddeck.main(["--config", str(preset), "info", hits_file]) == 1


def test_process_rejects_oversized_before_reading(tmp_path, hits_file, monkeypatch):
    small = tmp_path / "small.wav"
    small.write_bytes(encode(PcmBuffer(SR, block(0.05, 0.5))))
    preset = tmp_path / "limit.json"
    preset.write_text(json.dumps({"max_file_size": 2000}))
    out_dir = tmp_path / "out"

    read = []
    real_open = open

    def tracking_open(path, *args, **kwargs):
        read.append(os.path.basename(str(path)))
        return real_open(path, *args, **kwargs)

    monkeypatch.setattr(sounddeck, "open", tracking_open, raising=False)
    code = sounddeck.main(["--config", str(preset), "process", hits_file,
                           str(small), "-o", str(out_dir)])

    assert code == 1
    assert "hits.wav" not in read
    assert os.listdir(out_dir) == ["small.wav"]
