"""Configuration management with XDG paths, atomic writes, and precedence resolution.

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.toolscribe/`` on macOS and Windows. See :func:`get_config_dir`,
  :func:`get_cache_dir` and :func:`get_data_dir`.
* **Global config** -- a single :class:`~toolscribe.models.GlobalConfig`
  JSON file holding loader and cache settings.
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables, project-local config (``./toolscribe.json``) and
  the global config into the effective configuration.

All file writes use a temp-file-then-rename strategy (:func:`atomic_write`).
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from toolscribe.exceptions import ConfigError
from toolscribe.models import GlobalConfig

_APP_NAME = "toolscribe"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "toolscribe.json"

ENV_DEFAULT_MODEL = "TOOLSCRIBE_DEFAULT_MODEL"
ENV_TIMEOUT = "TOOLSCRIBE_TIMEOUT"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/toolscribe/`` (default ``~/.config/toolscribe/``).
    On macOS/Windows: ``~/.toolscribe/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_dir() -> Path:
    """Return the cache directory (fetched remote sources), creating it if necessary.

    On Linux/BSD: ``$XDG_CACHE_HOME/toolscribe/`` (default ``~/.cache/toolscribe/``).
    On macOS/Windows: ``~/.toolscribe/cache/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CACHE_HOME", (".cache",)) / _APP_NAME
    else:
        path = _fallback_base_dir() / "cache"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/toolscribe/`` (default ``~/.local/share/toolscribe/``).
    On macOS/Windows: ``~/.toolscribe/logs/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file lives in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems. On any failure the
    temp file is removed.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close in finally
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Global config ---


def _global_config_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


def _read_json(path: Path, what: str) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Invalid {what} at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid {what} at {path}: expected a JSON object")
    return data


def load_global_config() -> GlobalConfig:
    """Load the global configuration, or defaults when the file does not exist.

    Raises:
        ConfigError: If the file exists but is invalid JSON or fails validation.
    """
    path = _global_config_path()
    if not path.is_file():
        return GlobalConfig()
    data = _read_json(path, "global config")
    try:
        return GlobalConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    """Persist the global configuration atomically to disk."""
    data = config.model_dump(mode="json")
    atomic_write(_global_config_path(), json.dumps(data, indent=2) + "\n")


# --- Project-local config ---


def load_project_config() -> Optional[dict[str, Any]]:
    """Load ``./toolscribe.json`` (same shape as the global config, all keys optional).

    Returns:
        The parsed JSON as a dict, or ``None`` if the file does not exist.

    Raises:
        ConfigError: If the file exists but contains invalid JSON.
    """
    path = Path.cwd() / _PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    return _read_json(path, "project config")


# --- Precedence resolution ---


def resolve_config(
    cli_default_model: Optional[str] = None,
    cli_timeout: Optional[float] = None,
) -> GlobalConfig:
    """Resolve config with full precedence chain.

    Precedence (high to low):
        1. CLI flags (``cli_default_model``, ``cli_timeout``)
        2. Environment variables (``TOOLSCRIBE_DEFAULT_MODEL``, ``TOOLSCRIBE_TIMEOUT``)
        3. Project config (``./toolscribe.json``)
        4. User config (``~/.config/toolscribe/config.json``)
        5. Defaults

    Raises:
        ConfigError: If any layer holds an invalid value.
    """
    data = load_global_config().model_dump()

    project = load_project_config()
    if project is not None:
        for section in ("loader", "cache"):
            overrides = project.get(section)
            if isinstance(overrides, dict):
                data[section].update(overrides)

    loader = data["loader"]
    env_model = os.environ.get(ENV_DEFAULT_MODEL)
    if env_model:
        loader["default_model"] = env_model
    env_timeout = os.environ.get(ENV_TIMEOUT)
    if env_timeout:
        try:
            loader["timeout"] = float(env_timeout)
        except ValueError:
            raise ConfigError(f"{ENV_TIMEOUT} must be a number of seconds, got '{env_timeout}'") from None

    if cli_default_model is not None:
        loader["default_model"] = cli_default_model
    if cli_timeout is not None:
        loader["timeout"] = cli_timeout

    try:
        return GlobalConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
