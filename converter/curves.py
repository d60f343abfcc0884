"""
Curve baking.

Chooses the interpolation curve of each keyframe from the source frame's
tween settings and writes bone and slot keyframes, keeping rotation keys
continuous.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

from scene.model import SceneFrame
from spine.skeleton import Bone, CurveType, Slot, TimelineType

if TYPE_CHECKING:
    from converter.context import ConversionContext
    from converter.transform import BonePose

logger = logging.getLogger(__name__)

Curve = Tuple[CurveType, Optional[List[float]]]


def elevate_ease(intensity: float) -> List[float]:
    """
    Convert a classic ease intensity (-100..100) into cubic bezier controls.

    The intensity defines the middle control point of a quadratic curve,
    which is then degree-elevated to a cubic one.

    Args:
        intensity: Negative eases in, positive eases out

    Returns:
        ``[cx1, cy1, cx2, cy2]``
    """
    k = min(abs(intensity), 100.0) / 100.0
    if intensity < 0:
        q1y = 0.5 * (1.0 - k)
    else:
        q1y = 0.5 + 0.5 * k
    return [1.0 / 3.0, 2.0 / 3.0 * q1y, 2.0 / 3.0, 1.0 + 2.0 / 3.0 * (q1y - 1.0)]


def frame_curve(frame: SceneFrame) -> Curve:
    """Curve for a frame known to carry a tween."""
    if frame.tween_type != "classic":
        return CurveType.LINEAR, None

    if frame.has_custom_ease:
        points: Sequence[Tuple[float, float]] = frame.custom_ease
        if len(points) == 4:
            return CurveType.BEZIER, [points[1][0], points[1][1], points[2][0], points[2][1]]
        logger.debug("Custom ease with %d points is not a single bezier, using linear", len(points))
        return CurveType.LINEAR, None

    if frame.tween_easing:
        return CurveType.BEZIER, elevate_ease(frame.tween_easing)

    return CurveType.LINEAR, None


def select_curve(context: "ConversionContext") -> Curve:
    """
    Find the curve for a keyframe written in ``context``.

    Un-tweened frames defer to the nearest enclosing tweened frame, so a
    static nested instance moves with its animated parent.
    """
    seen_frame = False
    for ancestor in context.ancestors():
        frame = ancestor.frame
        if frame is None:
            continue
        seen_frame = True
        if frame.tween_type != "none":
            return frame_curve(frame)

    if seen_frame:
        return CurveType.STEPPED, None
    return CurveType.LINEAR, None


def unwrap_rotation(angle: float, previous: float) -> float:
    """Shift ``angle`` by whole turns until it is within (-180, 180] of ``previous``."""
    while angle - previous > 180.0:
        angle -= 360.0
    while angle - previous <= -180.0:
        angle += 360.0
    return angle


def _ratio(value: float, base: float) -> float:
    return value / base if base else value


def apply_bone_animation(context: "ConversionContext", bone: Bone, pose: "BonePose", time: float):
    """
    Write rotate, translate, scale and shear keys relative to the bone's setup pose.
    """
    animation = context.global_state.animation
    group = animation.get_or_create_bone_timeline(bone)
    curve, params = select_curve(context)

    rotate = group.get(TimelineType.ROTATE)
    angle = pose.rotation - bone.rotation
    previous = rotate.last
    if previous is not None and time > previous.time:
        angle = unwrap_rotation(angle, previous.value)
    rotate.create_frame(time, curve, params).value = angle

    group.get(TimelineType.TRANSLATE).create_frame(time, curve, params).value = (
        pose.x - bone.x,
        pose.y - bone.y,
    )
    group.get(TimelineType.SCALE).create_frame(time, curve, params).value = (
        _ratio(pose.scale_x, bone.scale_x),
        _ratio(pose.scale_y, bone.scale_y),
    )
    group.get(TimelineType.SHEAR).create_frame(time, curve, params).value = (
        pose.shear_x - bone.shear_x,
        pose.shear_y - bone.shear_y,
    )


def apply_slot_attachment(context: "ConversionContext", slot: Slot, attachment: Optional[str], time: float):
    """Key the visible attachment of a slot; ``None`` hides the slot."""
    animation = context.global_state.animation
    timeline = animation.get_or_create_slot_timeline(slot).get(TimelineType.ATTACHMENT)
    timeline.create_frame(time, CurveType.STEPPED).value = attachment


def apply_slot_color(context: "ConversionContext", slot: Slot, color: str, time: float):
    animation = context.global_state.animation
    curve, params = select_curve(context)
    timeline = animation.get_or_create_slot_timeline(slot).get(TimelineType.COLOR)
    timeline.create_frame(time, curve, params).value = color
