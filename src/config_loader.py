"""YAML configuration loader with environment-based secret resolution.

Notes:
- Secrets are NOT stored in the YAML file; only the ENV VAR names are.
- Defaults here feed the URL builder when a caller leaves a field unset.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Dict

import yaml

from locations import Coordinate, RenderStyle  # type: ignore


@dataclass(frozen=True)
class APIConfig:
    google_maps_api_key_env: str
    url_signing_secret_env: str | None = None

    def get_google_maps_api_key(self) -> str | None:
        return os.getenv(self.google_maps_api_key_env)

    def get_url_signing_secret(self) -> str | None:
        return (
            os.getenv(self.url_signing_secret_env)
            if self.url_signing_secret_env
            else None
        )


@dataclass(frozen=True)
class Defaults:
    width: int = 600
    height: int = 400
    zoom: int = 4
    maptype: RenderStyle = RenderStyle.ROADMAP
    style: str = ""


@dataclass(frozen=True)
class Config:
    project_name: str
    project_version: str
    api: APIConfig
    defaults: Defaults
    fallback_center: Coordinate

    def validate(self) -> None:
        if self.defaults.width < 1 or self.defaults.height < 1:
            raise ValueError("defaults.width and defaults.height must be >= 1.")
        # Google Static Maps accepts zoom levels 0 (world) through 21 (building).
        if not 0 <= self.defaults.zoom <= 21:
            raise ValueError(f"defaults.zoom={self.defaults.zoom} must be in 0..21.")
        if not -90.0 <= self.fallback_center.latitude <= 90.0:
            raise ValueError("fallback_center.lat must be in [-90, 90].")
        if not -180.0 <= self.fallback_center.longitude <= 180.0:
            raise ValueError("fallback_center.lng must be in [-180, 180].")


def _require_key(d: Dict[str, Any], key: str) -> Any:
    if key not in d:
        raise KeyError(f"Missing required configuration key: {key}")
    return d[key]


def _parse_maptype(value: Any) -> RenderStyle:
    try:
        return RenderStyle(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(s.value for s in RenderStyle)
        raise ValueError(
            f"defaults.maptype={value!r} is not one of: {allowed}."
        ) from None


def load_config(path: str) -> Config:
    """Load and validate YAML configuration from `path`.

    Environment variables are resolved lazily via the APIConfig helpers.
    """
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    project = raw.get("project", {})
    api_raw = raw.get("api", {})
    defaults_raw = raw.get("defaults", {}) or {}
    center_raw = raw.get("fallback_center", {})

    base = Defaults()
    cfg = Config(
        project_name=_require_key(project, "name"),
        project_version=str(_require_key(project, "version")),
        api=APIConfig(
            google_maps_api_key_env=_require_key(api_raw, "google_maps_api_key_env"),
            url_signing_secret_env=api_raw.get("url_signing_secret_env"),
        ),
        defaults=Defaults(
            width=int(defaults_raw.get("width", base.width)),
            height=int(defaults_raw.get("height", base.height)),
            zoom=int(defaults_raw.get("zoom", base.zoom)),
            maptype=_parse_maptype(defaults_raw.get("maptype", base.maptype.value)),
            style=str(defaults_raw.get("style") or ""),
        ),
        fallback_center=Coordinate(
            float(_require_key(center_raw, "lat")),
            float(_require_key(center_raw, "lng")),
        ),
    )

    cfg.validate()
    return cfg
