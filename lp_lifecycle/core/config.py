import json
import os
from pathlib import Path
from typing import Any

_CONFIG_ENV_KEYS = ("LP_LIFECYCLE_CONFIG_PATH", "LP_LIFECYCLE_CONFIG")
_PRIVATE_KEY_ENV = "LP_LIFECYCLE_PRIVATE_KEY"
_DEFAULT_CONFIG_FILENAME = "config.json"
_LIFECYCLE_KEY = "lifecycle"


def _project_root() -> Path | None:
    # cwd first so a checkout run from elsewhere still finds its own config
    for start in (Path.cwd(), Path(__file__).parent):
        for candidate in (start.resolve(), *start.resolve().parents):
            if (candidate / "pyproject.toml").exists():
                return candidate
    return None


def _env_config_path() -> str:
    for key in _CONFIG_ENV_KEYS:
        value = os.getenv(key, "").strip()
        if value:
            return value
    return ""


def resolve_config_path(path: str | Path | None = None) -> Path:
    """Explicit path, else the env override, else ``config.json`` at the repo root.

    A relative env path is taken relative to the repo root, not the cwd.
    """
    if path is not None:
        return Path(path).expanduser()

    candidate = Path(_env_config_path() or _DEFAULT_CONFIG_FILENAME).expanduser()
    if candidate.is_absolute():
        return candidate
    root = _project_root()
    return root / candidate if root else candidate


def load_config_json(
    path: str | Path | None = None, *, require_exists: bool = False
) -> dict[str, Any]:
    cfg_path = resolve_config_path(path)
    if not cfg_path.exists():
        if require_exists:
            raise FileNotFoundError(f"Config file not found: {cfg_path}")
        return {}
    try:
        return json.loads(cfg_path.read_text())
    except json.JSONDecodeError as exc:
        raise ValueError(f"Config file is not valid JSON: {cfg_path}") from exc


CONFIG: dict[str, Any] = {}


def set_config(config: dict[str, Any]) -> None:
    """Replace the global CONFIG dict in-place.

    Modules holding a reference to CONFIG see the new contents.
    """
    CONFIG.clear()
    CONFIG.update(config)


def load_config(
    path: str | Path | None = None, *, require_exists: bool = False
) -> dict[str, Any]:
    set_config(load_config_json(path, require_exists=require_exists))
    return CONFIG


def set_rpc_urls(rpc_urls: dict[str, Any]) -> None:
    CONFIG.setdefault("strategy", {})["rpc_urls"] = rpc_urls


def get_rpc_urls() -> dict[str, Any]:
    return CONFIG.get("strategy", {}).get("rpc_urls", {})


def get_lifecycle_section(**overrides: Any) -> dict[str, Any]:
    """Copy of the ``lifecycle`` section with non-None ``overrides`` applied."""
    section = CONFIG.get(_LIFECYCLE_KEY) or {}
    if not isinstance(section, dict):
        raise ValueError(f"'{_LIFECYCLE_KEY}' config section must be an object")
    merged = dict(section)
    merged.update({k: v for k, v in overrides.items() if v is not None})
    return merged


def get_wallet_private_key() -> str | None:
    wallet = CONFIG.get("wallet") or {}
    for key in ("private_key", "private_key_hex"):
        value = wallet.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return os.environ.get(_PRIVATE_KEY_ENV) or None
