"""
Spine export.

This package provides the abstract Spine skeleton model, its JSON encoder,
the Pillow image exporter, texture atlas packing and project packaging.
"""

__all__ = [
    "atlas_generator",
    "image_export",
    "project_packager",
    "skeleton",
    "spine_format",
]
