"""
Scene Graph Model

Read-only description of a keyframe-based vector animation document:
library items own timelines, timelines own layers, layers own keyframe
spans and spans own the elements visible while they last.

Layers are stored top-down (index 0 is the top of the layer stack) and
frames are stored as spans; ``SceneLayer.frame_at`` gives per-index access
the same way the authoring tool exposes it.
"""

from __future__ import annotations

import bisect
import math
from dataclasses import dataclass, field
from typing import List, Optional, Tuple


@dataclass
class Point:
    x: float = 0.0
    y: float = 0.0


@dataclass
class Matrix:
    """2D affine matrix in the source (y-down) coordinate system."""
    a: float = 1.0
    b: float = 0.0
    c: float = 0.0
    d: float = 1.0
    tx: float = 0.0
    ty: float = 0.0

    def transform_point(self, x: float, y: float) -> Tuple[float, float]:
        return (
            x * self.a + y * self.c + self.tx,
            x * self.b + y * self.d + self.ty,
        )

    def transform_vector(self, x: float, y: float) -> Tuple[float, float]:
        """Apply only the linear part (rotation, scale, skew)."""
        return (x * self.a + y * self.c, x * self.b + y * self.d)

    def concat(self, outer: "Matrix") -> "Matrix":
        """Return ``self`` followed by ``outer`` (child matrix into parent space)."""
        return Matrix(
            a=self.a * outer.a + self.b * outer.c,
            b=self.a * outer.b + self.b * outer.d,
            c=self.c * outer.a + self.d * outer.c,
            d=self.c * outer.b + self.d * outer.d,
            tx=self.tx * outer.a + self.ty * outer.c + outer.tx,
            ty=self.tx * outer.b + self.ty * outer.d + outer.ty,
        )

    def translated(self, dx: float, dy: float) -> "Matrix":
        return Matrix(self.a, self.b, self.c, self.d, self.tx + dx, self.ty + dy)


@dataclass
class ColorTransform:
    """Per-instance tint and alpha adjustment (percent 0-100, amount -255..255)."""
    alpha_percent: float = 100.0
    alpha_amount: float = 0.0
    red_percent: float = 100.0
    red_amount: float = 0.0
    green_percent: float = 100.0
    green_amount: float = 0.0
    blue_percent: float = 100.0
    blue_amount: float = 0.0


@dataclass
class Edge:
    """One outline edge. No controls is a line, one is quadratic, two is cubic."""
    start: Point
    end: Point
    controls: List[Point] = field(default_factory=list)

    @property
    def is_line(self) -> bool:
        return not self.controls


@dataclass
class Contour:
    edges: List[Edge] = field(default_factory=list)
    interior: bool = False


@dataclass(eq=False)
class LibraryItem:
    name: str
    item_type: str = "graphic"
    timeline: Optional["SceneTimeline"] = None
    source_path: Optional[str] = None
    width: int = 0
    height: int = 0

    @property
    def is_bitmap(self) -> bool:
        return self.item_type == "bitmap"


@dataclass(eq=False)
class SceneElement:
    """
    A node of the scene graph: a shape, a text field or an instance.

    Attributes:
        element_type: "shape", "text" or "instance"
        instance_type: "symbol" or "bitmap" for instances, None otherwise
        matrix: Local affine transform relative to the parent registration point
        transformation_point: Anchor point in the element's own local space
        x, y: Explicit registration position (shapes); falls back to the matrix
    """
    element_type: str
    instance_type: Optional[str] = None
    name: str = ""
    library_item: Optional[LibraryItem] = None
    matrix: Matrix = field(default_factory=Matrix)
    transformation_point: Point = field(default_factory=Point)
    x: Optional[float] = None
    y: Optional[float] = None
    visible: bool = True
    color: ColorTransform = field(default_factory=ColorTransform)
    blend_mode: str = "normal"
    contours: List[Contour] = field(default_factory=list)
    fill_color: str = "#808080"

    @property
    def is_shape(self) -> bool:
        return self.element_type == "shape"

    @property
    def is_symbol_instance(self) -> bool:
        return self.element_type == "instance" and self.instance_type == "symbol"

    @property
    def is_bitmap_instance(self) -> bool:
        return self.element_type == "instance" and self.instance_type == "bitmap"

    @property
    def timeline(self) -> Optional["SceneTimeline"]:
        return self.library_item.timeline if self.library_item else None

    @property
    def registration_x(self) -> float:
        return self.x if self.x is not None else self.matrix.tx

    @property
    def registration_y(self) -> float:
        return self.y if self.y is not None else self.matrix.ty

    @property
    def scale_x(self) -> float:
        return math.hypot(self.matrix.a, self.matrix.b)

    @property
    def scale_y(self) -> float:
        return math.hypot(self.matrix.c, self.matrix.d)

    @property
    def skew_x(self) -> float:
        return math.degrees(math.atan2(-self.matrix.c, self.matrix.d))

    @property
    def skew_y(self) -> float:
        return math.degrees(math.atan2(self.matrix.b, self.matrix.a))


@dataclass(eq=False)
class SceneFrame:
    """A keyframe span ``[start_frame, start_frame + duration)``."""
    start_frame: int = 0
    duration: int = 1
    tween_type: str = "none"
    tween_easing: float = 0.0
    custom_ease: Optional[List[Tuple[float, float]]] = None
    label_type: str = "none"
    name: str = ""
    elements: List[SceneElement] = field(default_factory=list)

    @property
    def has_custom_ease(self) -> bool:
        return self.custom_ease is not None

    @property
    def end_frame(self) -> int:
        return self.start_frame + self.duration - 1


@dataclass(eq=False)
class SceneLayer:
    name: str = ""
    layer_type: str = "normal"
    visible: bool = True
    frames: List[SceneFrame] = field(default_factory=list)

    def __post_init__(self):
        self.frames.sort(key=lambda f: f.start_frame)

    @property
    def frame_count(self) -> int:
        if not self.frames:
            return 0
        return max(f.start_frame + f.duration for f in self.frames)

    def frame_at(self, index: int) -> Optional[SceneFrame]:
        """Return the span covering ``index``, or None past the layer's end."""
        if index < 0 or not self.frames:
            return None
        starts = [f.start_frame for f in self.frames]
        pos = bisect.bisect_right(starts, index) - 1
        if pos < 0:
            return None
        frame = self.frames[pos]
        if index > frame.end_frame:
            return None
        return frame


@dataclass(eq=False)
class SceneTimeline:
    name: str = ""
    layers: List[SceneLayer] = field(default_factory=list)

    @property
    def frame_count(self) -> int:
        return max((layer.frame_count for layer in self.layers), default=0)


@dataclass
class SceneDocument:
    name: str
    frame_rate: float
    timeline: SceneTimeline
    library: dict = field(default_factory=dict)
    selection: List[SceneElement] = field(default_factory=list)
