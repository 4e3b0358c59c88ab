"""Coordinates, markers and render styles for Static Maps requests.

- Coordinate: immutable lat/lng pair, serialized as "lat,lng"
- Marker: a pin at a coordinate, optionally with a custom icon URL
- RenderStyle: closed set of Google Static Maps `maptype` values

Validation of coordinate ranges is left to callers; values are passed
through to the service as given.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional


# ------------------------------
# Data models
# ------------------------------


def _degrees(value: float) -> str:
    """Plain decimal degrees; never exponent form (5e-05 -> 0.00005)."""
    return format(Decimal(repr(value)), "f")


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float

    def param(self) -> str:
        return f"{_degrees(self.latitude)},{_degrees(self.longitude)}"

    def __str__(self) -> str:
        return self.param()


@dataclass(frozen=True)
class Marker:
    coordinate: Coordinate
    icon: Optional[str] = None

    @property
    def latitude(self) -> float:
        return self.coordinate.latitude

    @property
    def longitude(self) -> float:
        return self.coordinate.longitude


class RenderStyle(Enum):
    ROADMAP = "roadmap"
    SATELLITE = "satellite"
    HYBRID = "hybrid"
    TERRAIN = "terrain"


DEFAULT_RENDER_STYLE = RenderStyle.ROADMAP

# Geographic center of the contiguous United States.
CENTER_OF_USA = Coordinate(37.0902, -95.7192)


_MAPTYPE_PARAMS: Dict[RenderStyle, str] = {
    RenderStyle.ROADMAP: "roadmap",
    RenderStyle.SATELLITE: "satellite",
    RenderStyle.HYBRID: "hybrid",
    RenderStyle.TERRAIN: "terrain",
}


def maptype_param(style: RenderStyle) -> str:
    """Return the `maptype` query value for `style`."""
    return _MAPTYPE_PARAMS[style]


# ------------------------------
# Text parsing (CLI / config input)
# ------------------------------


def parse_coordinate(text: str) -> Coordinate:
    """Parse 'lat,lng' into a Coordinate.

    Raises ValueError on anything that is not two comma-separated floats.
    """
    parts = [p.strip() for p in str(text).split(",")]
    if len(parts) != 2 or not all(parts):
        raise ValueError(f"Expected 'lat,lng', got: {text!r}")
    return Coordinate(float(parts[0]), float(parts[1]))


def parse_marker(text: str) -> Marker:
    """Parse 'lat,lng' or 'lat,lng,icon_url' into a Marker.

    The icon URL may itself contain commas; only the first two are split on.
    """
    parts = str(text).split(",", 2)
    if len(parts) < 2:
        raise ValueError(f"Expected 'lat,lng[,icon_url]', got: {text!r}")
    coord = parse_coordinate(f"{parts[0]},{parts[1]}")
    icon = parts[2].strip() if len(parts) == 3 else ""
    return Marker(coord, icon or None)
