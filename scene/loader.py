"""
Scene Document Loader

Builds the scene graph model from a JSON scene document. Library items are
resolved by name to one shared object so identity-based caches work across
every instance of the same item.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from converter.exceptions import SceneFormatError
from scene.model import (
    ColorTransform,
    Contour,
    Edge,
    LibraryItem,
    Matrix,
    Point,
    SceneDocument,
    SceneElement,
    SceneFrame,
    SceneLayer,
    SceneTimeline,
)

logger = logging.getLogger(__name__)


def _point(data: Any, what: str) -> Point:
    if isinstance(data, dict):
        return Point(float(data.get("x", 0.0)), float(data.get("y", 0.0)))
    if isinstance(data, (list, tuple)) and len(data) == 2:
        return Point(float(data[0]), float(data[1]))
    raise SceneFormatError(f"Invalid {what}: {data!r}")


def _matrix(data: Optional[Dict[str, Any]]) -> Matrix:
    if not data:
        return Matrix()
    return Matrix(**{k: float(data.get(k, default)) for k, default in
                     (("a", 1.0), ("b", 0.0), ("c", 0.0), ("d", 1.0), ("tx", 0.0), ("ty", 0.0))})


def _color(data: Optional[Dict[str, Any]]) -> ColorTransform:
    color = ColorTransform()
    for key, value in (data or {}).items():
        if not hasattr(color, key):
            raise SceneFormatError(f"Unknown color field '{key}'")
        setattr(color, key, float(value))
    return color


def _contours(data: List[Dict[str, Any]]) -> List[Contour]:
    contours = []
    for contour in data:
        edges = [
            Edge(
                start=_point(edge.get("start"), "edge start"),
                end=_point(edge.get("end"), "edge end"),
                controls=[_point(c, "edge control") for c in edge.get("controls", [])],
            )
            for edge in contour.get("edges", [])
        ]
        contours.append(Contour(edges=edges, interior=bool(contour.get("interior", False))))
    return contours


class SceneLoader:
    """
    Two-phase loader: library items are created first, then their timelines
    (and the main timeline) are parsed so element references resolve to the
    shared item objects.
    """

    def __init__(self):
        self.library: Dict[str, LibraryItem] = {}

    def load(self, data: Dict[str, Any]) -> SceneDocument:
        if not isinstance(data, dict):
            raise SceneFormatError("Scene document must be a JSON object")
        if "timeline" not in data:
            raise SceneFormatError("Scene document has no 'timeline'")

        items = data.get("library", [])
        for item in items:
            name = item.get("name")
            if not name:
                raise SceneFormatError("Library item without a name")
            self.library[name] = LibraryItem(
                name=name,
                item_type=item.get("item_type", "graphic"),
                source_path=item.get("source_path"),
                width=int(item.get("width", 0)),
                height=int(item.get("height", 0)),
            )

        for item in items:
            if item.get("timeline") is not None:
                self.library[item["name"]].timeline = self.parse_timeline(item["timeline"])

        timeline = self.parse_timeline(data["timeline"])
        document = SceneDocument(
            name=data.get("name", "scene"),
            frame_rate=float(data.get("frame_rate", 24.0)),
            timeline=timeline,
            library=self.library,
        )
        document.selection = self._resolve_selection(timeline, data.get("selection"))
        logger.debug(
            "Loaded scene '%s': %d library items, %d selected",
            document.name, len(self.library), len(document.selection),
        )
        return document

    def parse_timeline(self, data: Dict[str, Any]) -> SceneTimeline:
        return SceneTimeline(
            name=data.get("name", ""),
            layers=[self.parse_layer(layer) for layer in data.get("layers", [])],
        )

    def parse_layer(self, data: Dict[str, Any]) -> SceneLayer:
        return SceneLayer(
            name=data.get("name", ""),
            layer_type=data.get("layer_type", "normal"),
            visible=bool(data.get("visible", True)),
            frames=[self.parse_frame(frame) for frame in data.get("frames", [])],
        )

    def parse_frame(self, data: Dict[str, Any]) -> SceneFrame:
        ease = data.get("custom_ease")
        if "start_frame" not in data:
            raise SceneFormatError(f"Frame without 'start_frame': {data!r}")
        return SceneFrame(
            start_frame=int(data["start_frame"]),
            duration=max(1, int(data.get("duration", 1))),
            tween_type=data.get("tween_type", "none"),
            tween_easing=float(data.get("tween_easing", 0.0)),
            custom_ease=[(float(p[0]), float(p[1])) for p in ease] if ease is not None else None,
            label_type=data.get("label_type", "none"),
            name=data.get("name", ""),
            elements=[self.parse_element(element) for element in data.get("elements", [])],
        )

    def parse_element(self, data: Dict[str, Any]) -> SceneElement:
        element_type = data.get("element_type")
        if element_type not in ("instance", "shape", "text"):
            raise SceneFormatError(f"Unknown element type: {element_type!r}")

        library_item = None
        ref = data.get("library_item")
        if ref is not None:
            library_item = self.library.get(ref)
            if library_item is None:
                raise SceneFormatError(f"Element references unknown library item '{ref}'")

        return SceneElement(
            element_type=element_type,
            instance_type=data.get("instance_type"),
            name=data.get("name", ""),
            library_item=library_item,
            matrix=_matrix(data.get("matrix")),
            transformation_point=_point(data.get("transformation_point", {}), "transformation point"),
            x=data.get("x"),
            y=data.get("y"),
            visible=bool(data.get("visible", True)),
            color=_color(data.get("color")),
            blend_mode=data.get("blend_mode", "normal"),
            contours=_contours(data.get("contours", [])),
            fill_color=data.get("fill_color", "#808080"),
        )

    def _resolve_selection(
        self, timeline: SceneTimeline, selection: Optional[List[Dict[str, int]]]
    ) -> List[SceneElement]:
        if selection is None:
            result = []
            for layer in timeline.layers:
                frame = layer.frame_at(0)
                if frame is None:
                    continue
                result.extend(e for e in frame.elements if e.is_symbol_instance)
            return result

        result = []
        for ref in selection:
            try:
                layer = timeline.layers[ref["layer"]]
                frame = layer.frame_at(ref.get("frame", 0))
                result.append(frame.elements[ref["element"]])
            except (KeyError, IndexError, AttributeError) as exc:
                raise SceneFormatError(f"Invalid selection reference {ref!r}") from exc
        return result


def load_scene(source: Union[str, Path, Dict[str, Any]]) -> SceneDocument:
    """
    Load a scene document from a path or an already-parsed dict.

    Args:
        source: Path to a JSON scene document, or its parsed content

    Returns:
        SceneDocument with the selection resolved
    """
    if isinstance(source, dict):
        return SceneLoader().load(source)

    path = Path(source)
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as exc:
            raise SceneFormatError(f"{path}: {exc}") from exc
    return SceneLoader().load(data)
