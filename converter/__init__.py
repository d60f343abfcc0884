"""
Scene graph to skeleton conversion.

This package provides the two-pass conversion engine that turns nested
symbol timelines into Spine bones, slots, attachments and animations,
together with its transform, tint, curve and naming helpers.
"""

__all__ = [
    "cache",
    "color",
    "config",
    "context",
    "converter",
    "curves",
    "exceptions",
    "labels",
    "naming",
    "transform",
]
