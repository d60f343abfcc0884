"""
Transform decomposition.

Turns an element's affine matrix and anchor point into a Spine bone pose.
Source space is y-down, output space is y-up.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from scene.model import SceneElement

SKEW_TOLERANCE = 0.001


@dataclass
class BonePose:
    x: float = 0.0
    y: float = 0.0
    rotation: float = 0.0
    scale_x: float = 1.0
    scale_y: float = 1.0
    shear_x: float = 0.0
    shear_y: float = 0.0


def _angle_delta(a: float, b: float) -> float:
    delta = (a - b) % 360.0
    return delta - 360.0 if delta > 180.0 else delta


def decompose(
    element: SceneElement,
    previous: Optional[BonePose] = None,
    masked: bool = False
) -> BonePose:
    """
    Decompose an element into a bone pose.

    The bone sits on the element's anchor point: the registration point plus
    the anchor run through the element's own rotation, scale and skew.

    Args:
        element: Scene element to decompose
        previous: Last pose of the same bone; only used by callers tracking continuity
        masked: True when the element is a mask shape, which is placed by its matrix

    Returns:
        BonePose in output (y-up) space
    """
    matrix = element.matrix
    if element.is_shape and not masked:
        base_x, base_y = element.registration_x, element.registration_y
    else:
        base_x, base_y = matrix.tx, matrix.ty

    anchor = element.transformation_point
    offset_x, offset_y = matrix.transform_vector(anchor.x, anchor.y)

    pose = BonePose(
        x=base_x + offset_x,
        y=-(base_y + offset_y),
        scale_x=element.scale_x,
        scale_y=element.scale_y,
    )

    skew_x, skew_y = element.skew_x, element.skew_y
    if abs(_angle_delta(skew_x, skew_y)) < SKEW_TOLERANCE:
        pose.rotation = -skew_y
    else:
        pose.shear_x = -skew_x
        pose.shear_y = -skew_y

    return pose
