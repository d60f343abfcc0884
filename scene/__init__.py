"""
Scene graph input.

This package provides the read-only scene graph model (library items,
timelines, layers, frames and elements), the JSON scene document loader and
the shape geometry helpers used to build clipping polygons.
"""

__all__ = [
    "model",
    "loader",
    "geometry",
]
