"""
Shape Geometry

Flattens shape outlines (lines, quadratic and cubic edges) into flat
``[x, y, x, y, ...]`` vertex lists in the output (y-up) convention.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

import numpy as np

from converter.exceptions import UnsupportedGeometryTopologyError
from scene.model import Edge, Matrix, Point, SceneElement

logger = logging.getLogger(__name__)

DEFAULT_CURVE_SEGMENTS = 20


def _as_xy(point: Point, matrix: Optional[Matrix]) -> Tuple[float, float]:
    if point is None:
        raise UnsupportedGeometryTopologyError("edge is missing a point")
    try:
        x, y = float(point.x), float(point.y)
    except (TypeError, ValueError, AttributeError) as exc:
        raise UnsupportedGeometryTopologyError(f"unreadable point {point!r}") from exc
    if matrix is None:
        return x, y
    return matrix.transform_point(x, y)


def _sample_edge(edge: Edge, segments: int, matrix: Optional[Matrix]) -> np.ndarray:
    """Sample one edge, start point included and end point excluded."""
    p0 = np.array(_as_xy(edge.start, matrix))
    if edge.is_line:
        return p0.reshape(1, 2)

    p3 = np.array(_as_xy(edge.end, matrix))
    t = (np.arange(segments) / segments).reshape(-1, 1)
    mt = 1.0 - t

    if len(edge.controls) == 1:
        p1 = np.array(_as_xy(edge.controls[0], matrix))
        return mt * mt * p0 + 2 * mt * t * p1 + t * t * p3

    if len(edge.controls) == 2:
        p1 = np.array(_as_xy(edge.controls[0], matrix))
        p2 = np.array(_as_xy(edge.controls[1], matrix))
        return (mt ** 3) * p0 + 3 * (mt ** 2) * t * p1 + 3 * mt * (t ** 2) * p2 + (t ** 3) * p3

    raise UnsupportedGeometryTopologyError(
        f"edge with {len(edge.controls)} control points is not supported"
    )


def _collect_points(shape: SceneElement, segments: int, matrix: Optional[Matrix]) -> np.ndarray:
    chunks = []
    for contour in shape.contours:
        if contour.interior:
            continue
        for edge in contour.edges:
            chunks.append(_sample_edge(edge, segments, matrix))
    if not chunks:
        return np.zeros((0, 2))
    return np.vstack(chunks)


def flatten_shape(
    shape: SceneElement,
    segments_per_curve: int = DEFAULT_CURVE_SEGMENTS,
    matrix: Optional[Matrix] = None,
) -> Optional[List[float]]:
    """
    Flatten a shape's exterior contours into a polygon vertex list.

    Args:
        shape: Shape element to flatten
        segments_per_curve: Samples taken per curved edge
        matrix: Optional pre-transform applied to every point

    Returns:
        Flat vertex list with y negated, or None if the element is not a shape

    Raises:
        UnsupportedGeometryTopologyError: If an edge cannot be read
    """
    if not shape.is_shape:
        return None

    points = _collect_points(shape, segments_per_curve, matrix)
    logger.debug("Flattened %d vertices from %d contours", len(points), len(shape.contours))

    points[:, 1] *= -1
    return [float(v) for v in points.reshape(-1)]


def polygons(
    shape: SceneElement,
    segments_per_curve: int = DEFAULT_CURVE_SEGMENTS,
    matrix: Optional[Matrix] = None,
) -> List[np.ndarray]:
    """Return each exterior contour as an (N, 2) array in source (y-down) space."""
    result = []
    for contour in shape.contours:
        if contour.interior or not contour.edges:
            continue
        chunks = [_sample_edge(edge, segments_per_curve, matrix) for edge in contour.edges]
        result.append(np.vstack(chunks))
    return result


def shape_bounds(
    shapes: List[Tuple[SceneElement, Optional[Matrix]]],
    segments_per_curve: int = DEFAULT_CURVE_SEGMENTS,
) -> Optional[Tuple[float, float, float, float]]:
    """
    Compute ``(left, top, right, bottom)`` in source space over several shapes.

    Each entry pairs a shape with the matrix placing it in the common space.
    """
    arrays = [
        _collect_points(shape, segments_per_curve, matrix)
        for shape, matrix in shapes
    ]
    arrays = [a for a in arrays if len(a)]
    if not arrays:
        return None
    stacked = np.vstack(arrays)
    left, top = stacked.min(axis=0)
    right, bottom = stacked.max(axis=0)
    return float(left), float(top), float(right), float(bottom)
