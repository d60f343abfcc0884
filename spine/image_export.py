"""
Image Export

Rasterizes attachment artwork (bitmaps, raw shapes and primitive symbols)
to PNG files with Pillow and measures the pixel geometry Spine needs:
image size, export scale and the offset from the bone (anchor point) to
the image centre.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Protocol, Tuple

import numpy as np
from PIL import Image, ImageColor, ImageDraw

from scene import geometry
from scene.model import Matrix, Point, SceneElement

if TYPE_CHECKING:
    from converter.context import ConversionContext

logger = logging.getLogger(__name__)

Bounds = Tuple[float, float, float, float]


@dataclass
class SpineImage:
    """
    Measured export result.

    x/y are the anchor-to-centre offset in Spine (y-up) space for the
    element that was exported. center_x/center_y locate the image centre in
    the item's own (y-down) space, so other instances of the same item can
    derive their own offset; placeholders leave them unset.
    """
    path: str
    width: int
    height: int
    scale: float = 1.0
    x: float = 0.0
    y: float = 0.0
    center_x: Optional[float] = None
    center_y: Optional[float] = None

    def offset_for(self, anchor: Point) -> Tuple[float, float]:
        """Anchor-to-centre offset of an instance whose anchor is ``anchor``."""
        if self.center_x is None or self.center_y is None:
            return self.x, self.y
        return self.center_x - anchor.x, -(self.center_y - anchor.y)


class ImageExporter(Protocol):
    def export(self, context: "ConversionContext", target_path: str) -> SpineImage:
        ...


def _matrix_array(matrix: Matrix) -> np.ndarray:
    return np.array([
        [matrix.a, matrix.c, matrix.tx],
        [matrix.b, matrix.d, matrix.ty],
        [0.0, 0.0, 1.0],
    ])


def _bitmap_corners(element: SceneElement, matrix: Matrix) -> np.ndarray:
    item = element.library_item
    w, h = float(item.width), float(item.height)
    return np.array([matrix.transform_point(x, y) for x, y in ((0, 0), (w, 0), (w, h), (0, h))])


class PillowImageExporter:
    """
    Writes attachment images with Pillow.

    Args:
        output_dir: Root directory the relative target paths are resolved
            against. ``None`` measures images without writing anything.
        segments_per_curve: Samples per curved edge when rasterizing shapes
    """

    def __init__(self, output_dir: Optional[Path] = None, segments_per_curve: int = 20):
        self.output_dir = Path(output_dir) if output_dir is not None else None
        self.segments_per_curve = segments_per_curve

    def export(self, context: "ConversionContext", target_path: str) -> SpineImage:
        """
        Export the artwork of the context's element.

        Args:
            context: Context whose ``element`` is the bitmap, shape or primitive symbol
            target_path: Image path relative to the output directory

        Returns:
            SpineImage describing the exported (or only measured) image
        """
        config = context.global_state.config
        element = context.element

        if element.is_bitmap_instance:
            return self.export_bitmap(element, target_path, config.export_images)
        if element.is_symbol_instance:
            return self.export_symbol(element, target_path, config.shape_export_scale, config.export_images)
        return self.export_shape(element, target_path, config.shape_export_scale, config.export_shapes)

    def _resolve(self, target_path: str, write: bool) -> Optional[Path]:
        if not write or self.output_dir is None:
            return None
        path = self.output_dir / target_path
        path.parent.mkdir(parents=True, exist_ok=True)
        return path

    def export_bitmap(self, element: SceneElement, target_path: str, write: bool = True) -> SpineImage:
        item = element.library_item
        width, height = item.width, item.height
        destination = self._resolve(target_path, write)

        if destination is not None or not (width and height):
            if not item.source_path:
                raise FileNotFoundError(f"Bitmap '{item.name}' has no source image")
            with Image.open(item.source_path) as source:
                width, height = source.size
                if destination is not None:
                    source.convert("RGBA").save(destination, "PNG")
                    logger.debug("Exported bitmap %s to %s", item.name, destination)

        anchor = element.transformation_point
        image = SpineImage(target_path, width, height, 1.0, center_x=width / 2, center_y=height / 2)
        image.x, image.y = image.offset_for(anchor)
        return image

    def export_shape(self, element: SceneElement, target_path: str, scale: float, write: bool = True) -> SpineImage:
        return self._rasterize([(element, None)], element.transformation_point.x,
                               element.transformation_point.y, target_path, scale, write)

    def export_symbol(self, element: SceneElement, target_path: str, scale: float, write: bool = True) -> SpineImage:
        """Rasterize frame 0 of a primitive symbol, bottom layer first."""
        parts: List[Tuple[SceneElement, Optional[Matrix]]] = []
        timeline = element.timeline
        if timeline is not None:
            for layer in reversed(timeline.layers):
                if not layer.visible or layer.layer_type in ("guide", "folder", "mask"):
                    continue
                frame = layer.frame_at(0)
                if frame is None:
                    continue
                parts.extend((child, child.matrix) for child in frame.elements)

        anchor = element.transformation_point
        return self._rasterize(parts, anchor.x, anchor.y, target_path, scale, write)

    def _bounds(self, parts: List[Tuple[SceneElement, Optional[Matrix]]]) -> Optional[Bounds]:
        shapes = [(e, m) for e, m in parts if not e.is_bitmap_instance]
        corners = [_bitmap_corners(e, m or Matrix()) for e, m in parts if e.is_bitmap_instance]
        bounds = geometry.shape_bounds(shapes, self.segments_per_curve)

        if corners:
            stacked = np.vstack(corners)
            left, top = stacked.min(axis=0)
            right, bottom = stacked.max(axis=0)
            if bounds is not None:
                left, top = min(left, bounds[0]), min(top, bounds[1])
                right, bottom = max(right, bounds[2]), max(bottom, bounds[3])
            bounds = (float(left), float(top), float(right), float(bottom))
        return bounds

    def _rasterize(
        self,
        parts: List[Tuple[SceneElement, Optional[Matrix]]],
        anchor_x: float,
        anchor_y: float,
        target_path: str,
        scale: float,
        write: bool,
    ) -> SpineImage:
        bounds = self._bounds(parts)
        if bounds is None:
            # Nothing drawable; a transparent pixel keeps the attachment valid
            bounds = (anchor_x, anchor_y, anchor_x, anchor_y)

        left, top, right, bottom = bounds
        width = max(1, math.ceil((right - left) * scale))
        height = max(1, math.ceil((bottom - top) * scale))

        destination = self._resolve(target_path, write)
        if destination is not None:
            canvas = Image.new("RGBA", (width, height), (0, 0, 0, 0))
            for element, matrix in parts:
                if element.is_bitmap_instance:
                    self._draw_bitmap(canvas, element, matrix or Matrix(), left, top, scale)
                else:
                    self._draw_shape(canvas, element, matrix, left, top, scale)
            canvas.save(destination, "PNG")
            logger.debug("Rasterized %d parts to %s (%dx%d)", len(parts), destination, width, height)

        center_x = (left + right) / 2
        center_y = (top + bottom) / 2
        return SpineImage(target_path, width, height, scale, center_x - anchor_x, -(center_y - anchor_y),
                          center_x, center_y)

    def _draw_shape(self, canvas: Image.Image, element: SceneElement, matrix: Optional[Matrix],
                    left: float, top: float, scale: float):
        try:
            fill = ImageColor.getrgb(element.fill_color)
        except ValueError:
            logger.warning("Invalid fill color %r, using gray", element.fill_color)
            fill = (128, 128, 128)

        draw = ImageDraw.Draw(canvas)
        for polygon in geometry.polygons(element, self.segments_per_curve, matrix):
            if len(polygon) < 3:
                continue
            points = (polygon - np.array([left, top])) * scale
            draw.polygon([tuple(p) for p in points.tolist()], fill=fill)

    def _draw_bitmap(self, canvas: Image.Image, element: SceneElement, matrix: Matrix,
                     left: float, top: float, scale: float):
        item = element.library_item
        if not item.source_path:
            raise FileNotFoundError(f"Bitmap '{item.name}' has no source image")

        forward = np.array([[scale, 0, -left * scale], [0, scale, -top * scale], [0, 0, 1]]) @ _matrix_array(matrix)
        inverse = np.linalg.inv(forward)
        data = tuple(inverse[0].tolist() + inverse[1].tolist())

        with Image.open(item.source_path) as source:
            bitmap = source.convert("RGBA")
        placed = bitmap.transform(canvas.size, Image.Transform.AFFINE, data, resample=Image.Resampling.BILINEAR)
        canvas.alpha_composite(placed)
