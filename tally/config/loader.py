from __future__ import annotations

import json

from result import Err, Ok, Result

from tally.config.defaults import default_config
from tally.config.schema import AppConfig, from_dict
from tally.services.fs import DEFAULT_FS, FileSystem

CONFIG_PATH = "~/.config/tally/config.json"


def load_config(path: str | None = None, fs: FileSystem = DEFAULT_FS) -> Result[AppConfig, str]:
    """Load the JSON config at *path* (or the default location).

    A missing file yields the defaults. Unreadable JSON, a non-object payload
    and unknown keys are all reported as ``Err`` so typos do not go unnoticed.
    """
    resolved = path or fs.expanduser(CONFIG_PATH)
    if not fs.exists(resolved):
        return Ok(default_config())

    defaults = default_config()
    try:
        payload = json.loads(fs.read_text(resolved))
    except (OSError, ValueError) as exc:
        return Err(f"Failed reading config at {resolved}: {exc}.")
    if not isinstance(payload, dict):
        return Err(f"Config at {resolved} must be a JSON object.")

    unknown = sorted(set(payload) - set(defaults.to_dict()))
    if unknown:
        return Err(f"Unknown config keys in {resolved}: {', '.join(unknown)}.")

    try:
        return Ok(from_dict(payload, defaults))
    except (TypeError, ValueError) as exc:
        return Err(f"Invalid value in config at {resolved}: {exc}.")


def sample_config_json() -> str:
    return json.dumps(default_config().to_dict(), indent=2)
