import json

import pytest

from regexblock.config import CONFIG_PATH, Config, load_config
from regexblock.errors import ConfigError


def test_defaults():
    config = Config.from_dict({"regexPatterns": ["^/admin"]})
    assert config.block_duration_minutes == 60
    assert config.block_duration_seconds == 3600.0
    assert config.whitelist == ()
    assert config.enable_debug is False


def test_from_dict_reads_camel_case_keys():
    config = Config.from_dict(
        {
            "regexPatterns": ["^/admin", r"\.php$"],
            "blockDurationMinutes": 0,
            "whitelist": ["10.0.0.1"],
            "enableDebug": True,
        }
    )
    assert config.regex_patterns == ("^/admin", r"\.php$")
    assert config.block_duration_minutes == 0
    assert config.whitelist == ("10.0.0.1",)
    assert config.enable_debug is True


@pytest.mark.parametrize(
    "data",
    [
        {"blockDurationMinutes": -1},
        {"blockDurationMinutes": "60"},
        {"blockDurationMinutes": True},
        {"regexPatterns": "^/admin"},
        {"regexPatterns": [1]},
        {"whitelist": {"ip": "10.0.0.1"}},
        {"enableDebug": "yes"},
    ],
)
def test_malformed_config_is_rejected(data):
    with pytest.raises(ConfigError):
        Config.from_dict(data)


def test_load_config_from_file(tmp_path):
    path = tmp_path / "rb.json"
    path.write_text(json.dumps({"regexPatterns": ["^/x"], "blockDurationMinutes": 2}), encoding="utf-8")
    config = load_config(path)
    assert config.regex_patterns == ("^/x",)
    assert config.block_duration_minutes == 2


def test_load_config_from_env(tmp_path, monkeypatch):
    path = tmp_path / "env.json"
    path.write_text(json.dumps({"regexPatterns": ["^/env"]}), encoding="utf-8")
    monkeypatch.setenv("REGEXBLOCK_CONFIG", str(path))
    assert load_config().regex_patterns == ("^/env",)


def test_bundled_config_loads(monkeypatch):
    monkeypatch.delenv("REGEXBLOCK_CONFIG", raising=False)
    config = load_config()
    assert config == load_config(CONFIG_PATH)
    assert config.regex_patterns


def test_load_config_errors(tmp_path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "missing.json")

    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(bad)
