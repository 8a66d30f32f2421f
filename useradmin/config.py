"""Configuration management for the user administration service."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import yaml

DATATABLES_BUNDLE = (
    "https://cdn.datatables.net/v/dt/jqc-1.12.4/moment-2.18.1/dt-1.13.3/b-2.3.5/date-1.3.1/sl-1.6.1"
)

DEFAULT_TITLE = "User Administration"
DEFAULT_PAGE_LENGTH = 10

DEFAULT_STYLESHEETS: Tuple[str, ...] = (
    "https://cdn.jsdelivr.net/npm/bootstrap@5.3.3/dist/css/bootstrap.min.css",
    "https://cdn.jsdelivr.net/npm/bootstrap-icons@1.10.3/font/bootstrap-icons.css",
    f"{DATATABLES_BUNDLE}/datatables.min.css",
    "/static/css/editor.dataTables.min.css",
)

# The editor plugin is licensed per site and must be served locally.
DEFAULT_SCRIPTS: Tuple[str, ...] = (
    f"{DATATABLES_BUNDLE}/datatables.min.js",
    "/static/js/dataTables.editor.min.js",
    "https://cdn.jsdelivr.net/npm/bootstrap@5.3.3/dist/js/bootstrap.bundle.min.js",
)


def _string_list(data: Dict[str, object], key: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = data.get(key)
    if raw is None:
        return default
    if not isinstance(raw, list) or not all(isinstance(item, str) for item in raw):
        raise ValueError(f"'{key}' must be a list of URLs")
    return tuple(item.strip() for item in raw if item.strip())


@dataclass(frozen=True)
class Settings:
    """Presentation and runtime settings for the administration pages."""

    title: str = DEFAULT_TITLE
    page_length: int = DEFAULT_PAGE_LENGTH
    stylesheets: Tuple[str, ...] = DEFAULT_STYLESHEETS
    scripts: Tuple[str, ...] = DEFAULT_SCRIPTS
    static_dir: Optional[Path] = None
    api_tokens: Tuple[str, ...] = field(default_factory=tuple)

    @staticmethod
    def from_dict(data: Dict[str, object], base_path: Path | None = None) -> "Settings":
        """Create :class:`Settings` from raw dictionary data."""

        page_length = data.get("page_length", DEFAULT_PAGE_LENGTH)
        if isinstance(page_length, bool) or not isinstance(page_length, int) or page_length < 1:
            raise ValueError("'page_length' must be a positive integer")

        static_dir: Optional[Path] = None
        raw_static = data.get("static_dir")
        if raw_static:
            candidate = Path(str(raw_static)).expanduser()
            if not candidate.is_absolute() and base_path is not None:
                candidate = base_path / candidate
            static_dir = candidate.resolve(strict=False)

        tokens = data.get("api_tokens") or []
        if not isinstance(tokens, list):
            raise ValueError("'api_tokens' must be a list of strings")

        return Settings(
            title=str(data.get("title") or DEFAULT_TITLE),
            page_length=page_length,
            stylesheets=_string_list(data, "stylesheets", DEFAULT_STYLESHEETS),
            scripts=_string_list(data, "scripts", DEFAULT_SCRIPTS),
            static_dir=static_dir,
            api_tokens=tuple(str(token).strip() for token in tokens if str(token).strip()),
        )


def load_settings(config_path: Path) -> Settings:
    """Load settings from a YAML file; a missing file yields the defaults."""

    if not config_path.exists():
        return Settings()

    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}

    if not isinstance(raw, dict):
        raise ValueError("Configuration file must contain a mapping at the top level")

    return Settings.from_dict(raw, base_path=config_path.parent)


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the configuration file."""
    if env_value:
        candidate = Path(env_value).expanduser().resolve(strict=False)
    else:
        candidate = (Path(__file__).resolve().parent.parent / "config" / "useradmin.yaml").resolve(strict=False)
    return candidate


def load_tokens_from_env() -> List[str]:
    raw = os.getenv("USERADMIN_API_TOKENS", "")
    return [token.strip() for token in raw.split(",") if token.strip()]


__all__ = ["Settings", "load_settings", "load_tokens_from_env", "resolve_config_path"]
