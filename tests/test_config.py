import json

import pytest

from sounddecklib.config import (
    ConfigError, ENGINE_PARAMS, SEGMENT_PARAMS, ParamSpec, default_config, load_preset,
    merge_configs, validate_config, validate_config_fields,
    validate_param_values,
)
from sounddecklib.processors import default_processors


def test_default_config_keys():
    config = default_config()
    assert config["max_concurrent"] == 8
    assert config["default_volume"] == 0.8
    assert config["max_file_size"] == 25 * 1024 * 1024
    assert config["trim_threshold"] == 0.02
    assert config["normalize_target"] == 0.95
    assert config["fade_ms"] == 15.0
    assert config["silence_threshold"] == 0.03
    assert config["min_silence_sec"] == 0.15


def test_defaults_validate():
    validate_config(default_config())


def test_merge_configs():
    merged = merge_configs({"a": 1, "b": 2}, {"b": 3}, {"c": 4})
    assert merged == {"a": 1, "b": 3, "c": 4}


@pytest.mark.parametrize("key, value", [
    ("max_concurrent", 0),
    ("max_concurrent", True),
    ("default_volume", 1.5),
    ("normalize_target", 0),
    ("fade_ms", "long"),
    ("silence_threshold", None),
])
def test_validate_rejects(key, value):
    config = merge_configs(default_config(), {key: value})
    errors = validate_config_fields(config)
    assert [e.key for e in errors] == [key]
    with pytest.raises(ConfigError):
        validate_config(config)


@pytest.mark.parametrize("value, ok", [(0.0, False), (1e-6, True), (1.0, True), (1.01, False)])
def test_validate_exclusive_minimum(value, ok):
    spec = ParamSpec(key="level", type=float, default=0.5, label="Level",
                     min=0.0, max=1.0, min_exclusive=True)
    errors = validate_param_values([spec], {"level": value})
    assert (errors == []) is ok


def test_validate_ignores_missing_keys():
    assert validate_param_values(ENGINE_PARAMS, {}) == []


def test_default_config_has_only_declared_keys():
    declared = {s.key for s in ENGINE_PARAMS + SEGMENT_PARAMS}
    for proc in default_processors():
        declared |= {s.key for s in proc.config_params()}
    assert set(default_config()) == declared


def test_load_preset(tmp_path, caplog):
    path = tmp_path / "loud.json"
    path.write_text(json.dumps({
        "_description": "louder clips",
        "normalize_target": 0.8,
        "volume_curve": "log",
    }))

    with caplog.at_level("WARNING", logger="sounddecklib.config"):
        assert load_preset(str(path)) == {"normalize_target": 0.8}
    assert "volume_curve" in caplog.text


def test_load_preset_missing(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_preset(str(tmp_path / "nope.json"))


def test_load_preset_invalid_json(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("{oops")
    with pytest.raises(ConfigError, match="Invalid JSON"):
        load_preset(str(path))


def test_load_preset_not_object(tmp_path):
    path = tmp_path / "list.json"
    path.write_text("[1, 2]")
    with pytest.raises(ConfigError):
        load_preset(str(path))
