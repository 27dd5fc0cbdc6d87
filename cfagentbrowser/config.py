"""Load and provide cfagentbrowser configuration from cfagentbrowser.toml."""
from __future__ import annotations

import math
import os
import sys
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomllib  # type: ignore[import]
    except ModuleNotFoundError:
        import tomli as tomllib  # type: ignore[no-redef]
from pathlib import Path

from cfagentbrowser.errors import ConfigError

CONFIG_FILENAME = "cfagentbrowser.toml"

# Checked in order after CFAGENTBROWSER_EXECUTABLE_PATH.
_FALLBACK_PATH_VARS = ("CHROME_PATH", "CHROMIUM_PATH")

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class Config:
    executable_path: str | None = None
    auto_download: bool = False
    launch_timeout: float = 30.0  # seconds; only the launch step is bounded
    launch_args: tuple[str, ...] = field(default_factory=tuple)
    headless: bool = True
    log_level: str = "WARNING"

    @property
    def launch_timeout_ms(self) -> float:
        return self.launch_timeout * 1000


def load(project_root: Path | None = None) -> Config:
    """Load config from cfagentbrowser.toml; all fields have defaults.

    Environment variables take precedence over the file.
    """
    if project_root is None:
        project_root = Path.cwd()

    toml_path = project_root / CONFIG_FILENAME
    data: dict = {}
    if toml_path.exists():
        try:
            with open(toml_path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"{toml_path}: {e}") from e

    browser = data.get("browser", {})
    logging_ = data.get("logging", {})
    env = os.environ

    executable_path = env.get("CFAGENTBROWSER_EXECUTABLE_PATH") or browser.get(
        "executable_path"
    )
    if not executable_path:
        executable_path = next(
            (env[name] for name in _FALLBACK_PATH_VARS if env.get(name)), None
        )

    if "CFAGENTBROWSER_AUTO_DOWNLOAD" in env:
        auto_download = _parse_bool(
            "CFAGENTBROWSER_AUTO_DOWNLOAD", env["CFAGENTBROWSER_AUTO_DOWNLOAD"]
        )
    else:
        auto_download = _parse_bool(
            "browser.auto_download", browser.get("auto_download", False)
        )

    launch_timeout = _parse_timeout(
        env.get("CFAGENTBROWSER_LAUNCH_TIMEOUT", browser.get("launch_timeout", 30))
    )

    if env.get("CFAGENTBROWSER_LAUNCH_ARGS"):
        launch_args = tuple(env["CFAGENTBROWSER_LAUNCH_ARGS"].split())
    else:
        launch_args = tuple(str(a) for a in browser.get("args", []))

    log_level = str(
        env.get("CFAGENTBROWSER_LOG_LEVEL") or logging_.get("level", "WARNING")
    ).upper()

    return Config(
        executable_path=executable_path or None,
        auto_download=auto_download,
        launch_timeout=launch_timeout,
        launch_args=launch_args,
        headless=_parse_bool("browser.headless", browser.get("headless", True)),
        log_level=log_level,
    )


def _parse_bool(name: str, raw: object) -> bool:
    if isinstance(raw, bool):
        return raw
    if not isinstance(raw, str):
        raise ConfigError(f"{name} must be a boolean, got {raw!r}")
    value = raw.strip().lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")


def _parse_timeout(raw: object) -> float:
    if isinstance(raw, bool):
        raise ConfigError(f"launch timeout must be a number, got {raw!r}")
    try:
        timeout = float(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError) as e:
        raise ConfigError(f"launch timeout must be a number, got {raw!r}") from e
    if not math.isfinite(timeout) or timeout <= 0:
        raise ConfigError(f"launch timeout must be positive and finite, got {raw!r}")
    return timeout
