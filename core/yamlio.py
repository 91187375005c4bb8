"""YAML read/write helpers for pipeline configuration files."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

from .cli_errors import ConfigError

__all__ = ["load_config", "dump_config"]


def _require_yaml():
    try:
        import yaml  # type: ignore

        return yaml
    except Exception as exc:  # pragma: no cover - runtime guard
        raise RuntimeError("PyYAML not installed. Run: pip install pyyaml") from exc


def load_config(path: Optional[str], *, required: bool = False) -> Dict[str, Any]:
    """Load a YAML mapping; returns {} if missing/empty.

    With ``required`` a missing file is a ConfigError, and so is any root
    that is not a mapping.
    """
    if not path:
        if required:
            raise ConfigError("No config file given", hint="Pass --config PATH")
        return {}
    yaml = _require_yaml()
    p = Path(path)
    if not p.exists():
        if required:
            raise ConfigError(f"Config file not found: {p}")
        return {}
    text = p.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {p}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Top-level YAML must be a mapping (dict): {p}")
    return data


def dump_config(path: str, data: Dict[str, Any]) -> None:
    """Write a dict to YAML with stable ordering for humans."""
    yaml = _require_yaml()
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(
        yaml.safe_dump(data, sort_keys=False, allow_unicode=True), encoding="utf-8"
    )
