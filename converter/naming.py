"""
Naming and classification helpers.

Derives deterministic bone, slot and attachment names from scene elements
and decides which library items are exported as a single image.
"""

from __future__ import annotations

import re
from typing import Iterable, Optional

from scene.model import LibraryItem, SceneElement, SceneLayer
from spine.skeleton import BlendMode

ROOT_BONE = "root"

_INVALID_CHARS = re.compile(r"[^a-z0-9_]+")
_REPEATED_UNDERSCORES = re.compile(r"_+")

_BLEND_MODES = {
    "multiply": BlendMode.MULTIPLY,
    "screen": BlendMode.SCREEN,
    "add": BlendMode.ADDITIVE,
}


def sanitize(value: Optional[str]) -> str:
    """
    Turn any string into a safe identifier.

    Lowercases, replaces every run of characters outside ``[a-z0-9_]`` with
    one underscore and trims underscores from both ends.

    >>> sanitize("Arm / Left.png")
    'arm_left_png'
    """
    result = _INVALID_CHARS.sub("_", (value or "").lower())
    result = _REPEATED_UNDERSCORES.sub("_", result).strip("_")
    return result or "unnamed"


def raw_element_name(element: SceneElement, layer: Optional[SceneLayer]) -> str:
    """Unsanitized name source of an element, or an empty string."""
    layer_name = layer.name if layer is not None else ""
    if element.element_type == "instance":
        if element.name:
            return element.name
        if layer_name:
            return layer_name
        if element.library_item is not None and element.library_item.name:
            return element.library_item.name
        return ""
    return layer_name


def shape_name(taken: Iterable[str]) -> str:
    """First ``shape_<n>`` not present in ``taken``."""
    taken = set(taken)
    index = 0
    while f"shape_{index}" in taken:
        index += 1
    return f"shape_{index}"


def bone_name(element_name: str, parent_bone_name: str) -> str:
    if parent_bone_name == ROOT_BONE:
        return element_name
    return f"{parent_bone_name}/{element_name}"


def slot_name(bone_name: str) -> str:
    return f"{bone_name}_slot"


def blend_mode(value: str) -> BlendMode:
    return _BLEND_MODES.get(value, BlendMode.NORMAL)


def is_primitive_item(item: Optional[LibraryItem]) -> bool:
    """
    True when a library item is exported as one image instead of being
    converted layer by layer.

    Bitmaps and items without a timeline are primitive. Symbols are
    primitive when exactly one visible layer draws anything and it holds a
    single keyframe without nested symbol instances.
    """
    if item is None or item.is_bitmap or item.timeline is None:
        return True

    layers = [
        layer for layer in item.timeline.layers
        if layer.visible and layer.layer_type not in ("guide", "folder")
    ]
    if len(layers) != 1:
        return False

    layer = layers[0]
    if layer.layer_type not in ("normal", "guided") or len(layer.frames) != 1:
        return False

    return not any(element.is_symbol_instance for element in layer.frames[0].elements)
