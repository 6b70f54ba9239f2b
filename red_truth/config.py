"""Runtime configuration: oracle connection and tutorial pacing."""

import os
from typing import Any

_CONFIG_DEFAULTS: dict[str, Any] = {
    "oracle_url": "http://localhost:5001",
    "oracle_api_key": "",
    "oracle_format": "koboldcpp",
    "oracle_model": "",
    "oracle_timeout": 120.0,
    "tutorial_step_delay": 1.0,
}

_ENV_NAMES = {
    "oracle_url": "ORACLE_URL",
    "oracle_api_key": "ORACLE_API_KEY",
    "oracle_format": "ORACLE_FORMAT",
    "oracle_model": "ORACLE_MODEL",
    "oracle_timeout": "ORACLE_TIMEOUT",
    "tutorial_step_delay": "TUTORIAL_STEP_DELAY",
}

ORACLE_FORMATS = ("koboldcpp", "openai")


def _number(key: str, raw: str) -> float:
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{_ENV_NAMES[key]} must be a number, got {raw!r}") from None
    if value < 0:
        raise ValueError(f"{_ENV_NAMES[key]} must not be negative, got {raw!r}")
    return value


def load_config(environ: dict[str, str] | None = None) -> dict[str, Any]:
    """Return defaults merged with environment variables.

    Only variables that are set (and non-empty) override a default.
    """
    env = os.environ if environ is None else environ
    config = dict(_CONFIG_DEFAULTS)
    for key, name in _ENV_NAMES.items():
        raw = env.get(name, "").strip()
        if not raw:
            continue
        if key in ("oracle_timeout", "tutorial_step_delay"):
            config[key] = _number(key, raw)
        else:
            config[key] = raw

    config["oracle_format"] = config["oracle_format"].lower()
    if config["oracle_format"] not in ORACLE_FORMATS:
        raise ValueError(
            f"ORACLE_FORMAT must be one of {', '.join(ORACLE_FORMATS)}, "
            f"got {config['oracle_format']!r}"
        )
    return config
