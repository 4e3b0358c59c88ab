"""Google Static Maps request URL builder.

- Applies defaults (size 600x400, maptype roadmap, zoom 4 for centered requests)
- Classifies the inputs into exactly one request shape, first match wins:
    PathOnly -> PathAndMarkers -> CenterOnly -> MarkersOnly
- Serializes an ordered list of (key, value) pairs, either as:
    * a flat map (one value per key) for standard requests, or
    * repeated keys, one `markers=` per pin, when markers carry custom icons
- Optionally signs the URL and appends a JSONL build record

Does NOT fetch the image. The API key is never written to the build log.

Wire notes:
- `path` and `markers` values are pipe-joined "lat,lng" lists.
- In custom-icon mode each marker is its own `markers=icon:<url>|lat,lng`
  (or `markers=lat,lng`) parameter, in the order size, style, path,
  markers, key. Segments are separate parameters; nothing is glued between them.
"""

from __future__ import annotations

import argparse
import asyncio
import datetime as dt
import json
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple, Union

import requests

import config_loader  # type: ignore
import urls  # type: ignore
from locations import (  # type: ignore
    CENTER_OF_USA,
    DEFAULT_RENDER_STYLE,
    Coordinate,
    Marker,
    RenderStyle,
    maptype_param,
    parse_coordinate,
    parse_marker,
)


DEFAULT_ZOOM = 4
DEFAULT_WIDTH = 600
DEFAULT_HEIGHT = 400

StyleInput = Union[str, Sequence[str], None]
Pairs = List[Tuple[str, str]]


class MissingZoomError(ValueError):
    """A center-only request was reached without a zoom level."""


class LiveView(Protocol):
    """Interactive map view that can report what it currently shows."""

    async def visible_markers(self) -> Sequence[Marker]:
        ...

    async def center(self) -> Coordinate:
        ...

    async def zoom(self) -> float:
        ...


# ------------------------------
# Data models
# ------------------------------


@dataclass(frozen=True)
class RequestSpec:
    points: Tuple[Coordinate, ...] = ()
    markers: Tuple[Marker, ...] = ()
    center: Optional[Coordinate] = None
    zoom: Optional[int] = None
    width: int = DEFAULT_WIDTH
    height: int = DEFAULT_HEIGHT
    render_style: RenderStyle = DEFAULT_RENDER_STYLE
    use_custom_icons: bool = False
    styles: Tuple[str, ...] = ()

    @property
    def size(self) -> str:
        return f"{self.width}x{self.height}"


@dataclass(frozen=True)
class PathOnly:
    path: str


@dataclass(frozen=True)
class PathAndMarkers:
    path: str
    markers: Tuple[Marker, ...]


@dataclass(frozen=True)
class CenterOnly:
    center: Coordinate
    zoom: Optional[int]


@dataclass(frozen=True)
class MarkersOnly:
    markers: Tuple[Marker, ...]


RequestShape = Union[PathOnly, PathAndMarkers, CenterOnly, MarkersOnly]


# ------------------------------
# Classification
# ------------------------------


def normalize_styles(style: StyleInput) -> Tuple[str, ...]:
    """Return non-empty style directives; "" or None means no style."""
    if style is None:
        return ()
    items = [style] if isinstance(style, str) else list(style)
    return tuple(s for s in items if s)


def join_coordinates(coords: Sequence[Coordinate]) -> str:
    return "|".join(c.param() for c in coords)


def join_markers(markers: Sequence[Marker]) -> str:
    return join_coordinates([m.coordinate for m in markers])


def default_center(
    spec: RequestSpec, fallback: Coordinate = CENTER_OF_USA
) -> Optional[Coordinate]:
    """Return the center to use, falling back when nothing else frames the map."""
    if spec.center is None and not spec.markers and len(spec.points) < 2:
        return fallback
    return spec.center


def classify(spec: RequestSpec, fallback: Coordinate = CENTER_OF_USA) -> RequestShape:
    has_path = len(spec.points) >= 2
    if has_path and not spec.markers:
        return PathOnly(join_coordinates(spec.points))
    if has_path:
        return PathAndMarkers(join_coordinates(spec.points), spec.markers)
    if not spec.markers:
        return CenterOnly(spec.center or fallback, spec.zoom)
    return MarkersOnly(spec.markers)


# ------------------------------
# Serialization
# ------------------------------


def marker_segment(marker: Marker) -> str:
    """Value of one repeated `markers=` parameter."""
    if marker.icon:
        return f"icon:{marker.icon}|{marker.coordinate.param()}"
    return marker.coordinate.param()


def with_center(pairs: Pairs, center: Coordinate) -> Pairs:
    """Set `center` in place if present, else append it."""
    out = [(k, center.param() if k == "center" else v) for k, v in pairs]
    if not any(k == "center" for k, _ in pairs):
        out.append(("center", center.param()))
    return out


def encode_url(pairs: Pairs, repeated_keys: bool = False) -> str:
    """Encode `pairs` onto the Static Maps endpoint.

    With `repeated_keys` False the pairs are collapsed to a flat map (one
    value per key, first-seen order); otherwise every pair is emitted.
    """
    params: Any = list(pairs) if repeated_keys else dict(pairs)
    prepared = requests.Request("GET", urls.STATIC_MAP_ENDPOINT, params=params).prepare()
    return str(prepared.url)


# ------------------------------
# Logging (JSONL; thread-safe)
# ------------------------------


class JsonlLogger:
    def __init__(self, path: Optional[str]) -> None:
        self.path = path
        self._lock = threading.Lock()
        if path:
            Path(os.path.dirname(path) or ".").mkdir(parents=True, exist_ok=True)

    def write(self, rec: Dict[str, Any]) -> None:
        if not self.path:
            return
        line = json.dumps(rec, ensure_ascii=False)
        with self._lock:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")


# ------------------------------
# Builder
# ------------------------------


class StaticMapUrlBuilder:
    """Builds Static Maps request URLs for one API key.

    Every public `build_*` method funnels into `assemble()`. Unset options
    fall back to `defaults` (600x400, roadmap, zoom 4, no style).
    """

    def __init__(
        self,
        api_key: str,
        defaults: Optional[config_loader.Defaults] = None,
        fallback_center: Coordinate = CENTER_OF_USA,
        signing_secret: Optional[str] = None,
        logger: Optional[JsonlLogger] = None,
    ) -> None:
        if not api_key:
            raise ValueError("A Google Maps API key is required.")
        self._api_key = api_key
        self.defaults = defaults or config_loader.Defaults()
        self.fallback_center = fallback_center
        self._signing_secret = signing_secret
        self.logger = logger or JsonlLogger(None)

    @classmethod
    def from_config(
        cls, cfg: config_loader.Config, logger: Optional[JsonlLogger] = None
    ) -> "StaticMapUrlBuilder":
        api_key = cfg.api.get_google_maps_api_key()
        if not api_key:
            raise ValueError(f"{cfg.api.google_maps_api_key_env} is not set.")
        return cls(
            api_key,
            defaults=cfg.defaults,
            fallback_center=cfg.fallback_center,
            signing_secret=cfg.api.get_url_signing_secret(),
            logger=logger,
        )

    # -- public operations --

    def build_centered(
        self,
        center: Optional[Coordinate],
        zoom: Optional[int] = None,
        *,
        width: Optional[int] = None,
        height: Optional[int] = None,
        render_style: Optional[RenderStyle] = None,
        style: StyleInput = None,
    ) -> str:
        """Map of the region around `center` at `zoom` (default 4)."""
        return self.assemble(
            self.request_spec(
                center=center,
                zoom=self.defaults.zoom if zoom is None else zoom,
                width=width,
                height=height,
                render_style=render_style,
                style=style,
            )
        )

    def build_with_markers(
        self,
        markers: Sequence[Marker],
        *,
        width: Optional[int] = None,
        height: Optional[int] = None,
        render_style: Optional[RenderStyle] = None,
        center: Optional[Coordinate] = None,
        use_custom_icons: bool = False,
        style: StyleInput = None,
    ) -> str:
        return self.assemble(
            self.request_spec(
                markers=markers,
                center=center,
                width=width,
                height=height,
                render_style=render_style,
                use_custom_icons=use_custom_icons,
                style=style,
            )
        )

    def build_with_path(
        self,
        points: Sequence[Coordinate],
        *,
        width: Optional[int] = None,
        height: Optional[int] = None,
        render_style: Optional[RenderStyle] = None,
        center: Optional[Coordinate] = None,
        style: StyleInput = None,
    ) -> str:
        """Map with a line through `points` (expects at least two)."""
        return self.assemble(
            self.request_spec(
                points=points,
                center=center,
                width=width,
                height=height,
                render_style=render_style,
                style=style,
            )
        )

    def build_with_path_and_markers(
        self,
        points: Sequence[Coordinate],
        markers: Sequence[Marker],
        *,
        width: Optional[int] = None,
        height: Optional[int] = None,
        render_style: Optional[RenderStyle] = None,
        center: Optional[Coordinate] = None,
        use_custom_icons: bool = False,
        style: StyleInput = None,
    ) -> str:
        return self.assemble(
            self.request_spec(
                points=points,
                markers=markers,
                center=center,
                width=width,
                height=height,
                render_style=render_style,
                use_custom_icons=use_custom_icons,
                style=style,
            )
        )

    def build_with_markers_and_zoom(
        self,
        markers: Sequence[Marker],
        zoom: Optional[int],
        *,
        width: Optional[int] = None,
        height: Optional[int] = None,
        render_style: Optional[RenderStyle] = None,
        center: Optional[Coordinate] = None,
        use_custom_icons: bool = False,
        style: StyleInput = None,
    ) -> str:
        return self.assemble(
            self.request_spec(
                markers=markers,
                center=center,
                zoom=zoom,
                width=width,
                height=height,
                render_style=render_style,
                use_custom_icons=use_custom_icons,
                style=style,
            )
        )

    async def build_from_live_view(
        self,
        view: LiveView,
        *,
        width: Optional[int] = None,
        height: Optional[int] = None,
        render_style: Optional[RenderStyle] = None,
        style: StyleInput = None,
    ) -> str:
        """Snapshot what `view` shows and build the matching markers request.

        The three reads run concurrently; the first failure cancels the
        reads still pending and propagates.
        """
        tasks = [
            asyncio.ensure_future(view.visible_markers()),
            asyncio.ensure_future(view.center()),
            asyncio.ensure_future(view.zoom()),
        ]
        try:
            markers, center, zoom = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                if not task.done():
                    task.cancel()
            # Collect cancellations so no result goes unretrieved.
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return self.assemble(
            self.request_spec(
                markers=markers,
                center=center,
                zoom=None if zoom is None else int(zoom),
                width=width,
                height=height,
                render_style=render_style,
                style=style,
            )
        )

    # -- assembly --

    def request_spec(
        self,
        *,
        points: Optional[Sequence[Coordinate]] = None,
        markers: Optional[Sequence[Marker]] = None,
        center: Optional[Coordinate] = None,
        zoom: Optional[int] = None,
        width: Optional[int] = None,
        height: Optional[int] = None,
        render_style: Optional[RenderStyle] = None,
        use_custom_icons: bool = False,
        style: StyleInput = None,
    ) -> RequestSpec:
        d = self.defaults
        return RequestSpec(
            points=tuple(points or ()),
            markers=tuple(markers or ()),
            center=center,
            zoom=zoom,
            width=d.width if width is None else width,
            height=d.height if height is None else height,
            render_style=d.maptype if render_style is None else render_style,
            use_custom_icons=bool(use_custom_icons),
            styles=normalize_styles(d.style if style is None else style),
        )

    def assemble(self, spec: RequestSpec) -> str:
        center = default_center(spec, self.fallback_center)
        shape = classify(spec, self.fallback_center)

        if spec.use_custom_icons and isinstance(shape, (PathAndMarkers, MarkersOnly)):
            pairs = self._custom_icon_pairs(spec, shape)
            mode = "custom_icons"
        else:
            pairs = self._standard_pairs(spec, shape)
            # Centering info is never dropped from a structured query.
            if center is not None:
                pairs = with_center(pairs, center)
            mode = "repeated_keys" if len(spec.styles) > 1 else "flat"

        url = encode_url(pairs, repeated_keys=(mode != "flat"))
        if self._signing_secret:
            url = urls.sign_url(url, self._signing_secret)

        self.logger.write(
            {
                "ts": dt.datetime.now(dt.timezone.utc).isoformat(),
                "shape": type(shape).__name__,
                "serialization": mode,
                "params": [k for k, _ in pairs],
                "signed": bool(self._signing_secret),
            }
        )
        return url

    def _standard_pairs(self, spec: RequestSpec, shape: RequestShape) -> Pairs:
        if isinstance(shape, PathOnly):
            head = [("path", shape.path)]
        elif isinstance(shape, PathAndMarkers):
            head = [("path", shape.path), ("markers", join_markers(shape.markers))]
        elif isinstance(shape, CenterOnly):
            if shape.zoom is None:
                raise MissingZoomError(
                    "No markers or path to frame the map and no zoom level given."
                )
            head = [("center", shape.center.param()), ("zoom", str(shape.zoom))]
        elif isinstance(shape, MarkersOnly):
            head = [("markers", join_markers(shape.markers))]
        else:
            raise TypeError(f"Unknown request shape: {shape!r}")

        return (
            head
            + [
                ("size", spec.size),
                ("maptype", maptype_param(spec.render_style)),
                ("key", self._api_key),
            ]
            + [("style", s) for s in spec.styles]
        )

    def _custom_icon_pairs(
        self, spec: RequestSpec, shape: Union[PathAndMarkers, MarkersOnly]
    ) -> Pairs:
        pairs: Pairs = [("size", spec.size)]
        pairs += [("style", s) for s in spec.styles]
        if isinstance(shape, PathAndMarkers):
            pairs.append(("path", shape.path))
        pairs += [("markers", marker_segment(m)) for m in shape.markers]
        pairs.append(("key", self._api_key))
        return pairs


# ------------------------------
# CLI
# ------------------------------


def build_url_from_args(builder: StaticMapUrlBuilder, args: argparse.Namespace) -> str:
    """Pick the builder operation matching the inputs given on the command line."""
    opts: Dict[str, Any] = {
        "width": args.width,
        "height": args.height,
        "render_style": RenderStyle(args.maptype) if args.maptype else None,
        "style": args.style,
    }
    points = args.point or []
    markers = args.marker or []
    if points and markers:
        return builder.build_with_path_and_markers(
            points, markers, center=args.center, use_custom_icons=args.custom_icons, **opts
        )
    if points:
        return builder.build_with_path(points, center=args.center, **opts)
    if markers and args.zoom is not None:
        return builder.build_with_markers_and_zoom(
            markers,
            args.zoom,
            center=args.center,
            use_custom_icons=args.custom_icons,
            **opts,
        )
    if markers:
        return builder.build_with_markers(
            markers, center=args.center, use_custom_icons=args.custom_icons, **opts
        )
    return builder.build_centered(args.center, args.zoom, **opts)


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(
        description="Build a Google Static Maps request URL (no image is fetched)."
    )
    parser.add_argument("--config", required=True, help="Path to config/config.yml")
    parser.add_argument("--center", type=parse_coordinate, help="Map center as lat,lng")
    parser.add_argument("--zoom", type=int, help="Zoom level (0-21)")
    parser.add_argument(
        "--point",
        action="append",
        type=parse_coordinate,
        help="Path point as lat,lng (repeatable, at least two for a path)",
    )
    parser.add_argument(
        "--marker",
        action="append",
        type=parse_marker,
        help="Marker as lat,lng or lat,lng,icon_url (repeatable)",
    )
    parser.add_argument("--width", type=int, help="Image width in pixels")
    parser.add_argument("--height", type=int, help="Image height in pixels")
    parser.add_argument("--maptype", choices=[s.value for s in RenderStyle])
    parser.add_argument(
        "--style", action="append", help="Style directive (repeatable)"
    )
    parser.add_argument(
        "--custom-icons",
        action="store_true",
        help="Emit one markers= parameter per pin so icon URLs are honored",
    )
    parser.add_argument(
        "--log",
        required=False,
        default=None,
        help="Optional path to a JSONL build log",
    )
    args = parser.parse_args(argv)

    cfg = config_loader.load_config(args.config)
    try:
        builder = StaticMapUrlBuilder.from_config(cfg, logger=JsonlLogger(args.log))
    except ValueError as e:
        raise SystemExit(f"ERROR: {e}")

    try:
        url = build_url_from_args(builder, args)
    except MissingZoomError as e:
        parser.error(str(e))
    print(url)


if __name__ == "__main__":
    main()
