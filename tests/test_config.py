"""Tests for red_truth.config.load_config."""

import pytest

from red_truth.config import load_config


def test_defaults():
    config = load_config({})
    assert config == {
        "oracle_url": "http://localhost:5001",
        "oracle_api_key": "",
        "oracle_format": "koboldcpp",
        "oracle_model": "",
        "oracle_timeout": 120.0,
        "tutorial_step_delay": 1.0,
    }


def test_environment_overrides():
    config = load_config({
        "ORACLE_URL": "http://gpu-box:8080",
        "ORACLE_API_KEY": "sk-1",
        "ORACLE_FORMAT": "OpenAI",
        "ORACLE_MODEL": "witch-7b",
        "ORACLE_TIMEOUT": "30",
        "TUTORIAL_STEP_DELAY": "0.25",
    })
    assert config["oracle_url"] == "http://gpu-box:8080"
    assert config["oracle_api_key"] == "sk-1"
    assert config["oracle_format"] == "openai"
    assert config["oracle_model"] == "witch-7b"
    assert config["oracle_timeout"] == 30.0
    assert config["tutorial_step_delay"] == 0.25


def test_blank_values_keep_defaults():
    config = load_config({"ORACLE_URL": "  ", "ORACLE_TIMEOUT": ""})
    assert config["oracle_url"] == "http://localhost:5001"
    assert config["oracle_timeout"] == 120.0


def test_reads_process_environment(monkeypatch):
    monkeypatch.setenv("ORACLE_MODEL", "from-env")
    assert load_config()["oracle_model"] == "from-env"


def test_unknown_format_rejected():
    with pytest.raises(ValueError, match="ORACLE_FORMAT"):
        load_config({"ORACLE_FORMAT": "gemini"})


@pytest.mark.parametrize("raw", ["soon", "-1"])
def test_bad_number_rejected(raw):
    with pytest.raises(ValueError, match="ORACLE_TIMEOUT"):
        load_config({"ORACLE_TIMEOUT": raw})
