"""
Spine JSON Format

Serializes a finished Skeleton into a Spine 4.x JSON document.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List

from spine.skeleton import (
    Animation,
    Attachment,
    BlendMode,
    ClippingAttachment,
    CurveType,
    Keyframe,
    RegionAttachment,
    Skeleton,
    Timeline,
    TimelineGroup,
    TimelineType,
)

logger = logging.getLogger(__name__)


def _clean(data: Dict[str, Any], defaults: Dict[str, Any]) -> Dict[str, Any]:
    """Drop keys whose value equals the Spine default."""
    return {k: v for k, v in data.items() if v is not None and defaults.get(k, object()) != v}


class SpineJsonEncoder:
    """
    Converts the abstract skeleton model to Spine JSON.
    """

    def __init__(self, version: str = "4.1.0"):
        self.version = version

    def encode(self, skeleton: Skeleton) -> Dict[str, Any]:
        """
        Build the Spine JSON document for a skeleton.

        Args:
            skeleton: Finished skeleton model

        Returns:
            Dict ready for ``json.dump``
        """
        document: Dict[str, Any] = {
            "skeleton": {
                "spine": self.version,
                "images": skeleton.images_path,
            },
            "bones": [self._export_bone(bone) for bone in skeleton.bones],
            "slots": [self._export_slot(slot) for slot in skeleton.slots],
            "skins": [{"name": "default", "attachments": self._export_skin(skeleton)}],
        }

        if skeleton.events:
            document["events"] = {name: {} for name in skeleton.events}

        document["animations"] = {
            name: self._export_animation(animation)
            for name, animation in skeleton.animations.items()
        }
        return document

    def _export_bone(self, bone) -> Dict[str, Any]:
        data = {
            "name": bone.name,
            "parent": bone.parent.name if bone.parent else None,
            "x": round(bone.x, 2),
            "y": round(bone.y, 2),
            "rotation": round(bone.rotation, 2),
            "scaleX": round(bone.scale_x, 4),
            "scaleY": round(bone.scale_y, 4),
            "shearX": round(bone.shear_x, 2),
            "shearY": round(bone.shear_y, 2),
        }
        return _clean(data, {"x": 0, "y": 0, "rotation": 0, "scaleX": 1, "scaleY": 1,
                             "shearX": 0, "shearY": 0})

    def _export_slot(self, slot) -> Dict[str, Any]:
        data = {
            "name": slot.name,
            "bone": slot.bone.name,
            "color": slot.color,
            "attachment": slot.attachment,
            "blend": slot.blend.value,
        }
        return _clean(data, {"color": "ffffffff", "blend": BlendMode.NORMAL.value})

    def _export_skin(self, skeleton: Skeleton) -> Dict[str, Any]:
        skin: Dict[str, Any] = {}
        for slot in skeleton.slots:
            if not slot.attachments:
                continue
            skin[slot.name] = {
                name: self._export_attachment(attachment)
                for name, attachment in slot.attachments.items()
            }
        return skin

    def _export_attachment(self, attachment: Attachment) -> Dict[str, Any]:
        if isinstance(attachment, ClippingAttachment):
            return _clean({
                "type": "clipping",
                "end": attachment.end.name if attachment.end else None,
                "vertexCount": attachment.vertex_count,
                "vertices": [round(v, 2) for v in attachment.vertices],
            }, {})

        if not isinstance(attachment, RegionAttachment):
            raise TypeError(f"Cannot export attachment '{attachment.name}' of type {type(attachment).__name__}")
        data = {
            "path": attachment.path if attachment.path != attachment.name else None,
            "x": round(attachment.x, 2),
            "y": round(attachment.y, 2),
            "rotation": round(attachment.rotation, 2),
            "scaleX": round(attachment.scale_x, 4),
            "scaleY": round(attachment.scale_y, 4),
            "width": round(attachment.width, 2),
            "height": round(attachment.height, 2),
        }
        return _clean(data, {"x": 0, "y": 0, "rotation": 0, "scaleX": 1, "scaleY": 1})

    def _export_animation(self, animation: Animation) -> Dict[str, Any]:
        anim_data: Dict[str, Any] = {}

        bones = {
            bone.name: self._export_group(group)
            for bone, group in animation.bone_timelines.items()
        }
        slots = {
            slot.name: self._export_group(group)
            for slot, group in animation.slot_timelines.items()
        }
        if slots:
            anim_data["slots"] = slots
        if bones:
            anim_data["bones"] = bones
        if animation.events:
            anim_data["events"] = [
                {"time": round(event.time, 4), "name": event.name}
                for event in sorted(animation.events, key=lambda e: e.time)
            ]
        return anim_data

    def _export_group(self, group: TimelineGroup) -> Dict[str, List[Dict[str, Any]]]:
        return {
            timeline_type.value: self._export_timeline(timeline)
            for timeline_type, timeline in group.timelines.items()
            if timeline.frames
        }

    def _export_timeline(self, timeline: Timeline) -> List[Dict[str, Any]]:
        result = []
        count = len(timeline.frames)
        for index, keyframe in enumerate(timeline.frames):
            result.append(self._export_keyframe(keyframe, timeline.type, is_last=index == count - 1))
        return result

    def _export_keyframe(
        self,
        keyframe: Keyframe,
        timeline_type: TimelineType,
        is_last: bool = False
    ) -> Dict[str, Any]:
        """
        Export a single keyframe to Spine JSON format.
        """
        kf_data: Dict[str, Any] = {}
        if keyframe.time:
            kf_data["time"] = round(keyframe.time, 4)

        if timeline_type == TimelineType.ROTATE:
            kf_data["value"] = round(keyframe.value, 2)
        elif timeline_type == TimelineType.TRANSLATE or timeline_type == TimelineType.SHEAR:
            kf_data["x"] = round(keyframe.value[0], 2)
            kf_data["y"] = round(keyframe.value[1], 2)
        elif timeline_type == TimelineType.SCALE:
            kf_data["x"] = round(keyframe.value[0], 4)
            kf_data["y"] = round(keyframe.value[1], 4)
        elif timeline_type == TimelineType.COLOR:
            kf_data["color"] = keyframe.value
        elif timeline_type == TimelineType.ATTACHMENT:
            kf_data["name"] = keyframe.value
            # Attachment keys are always instant
            return kf_data

        # Linear is default, and the last key has nothing to interpolate to
        if not is_last:
            if keyframe.curve == CurveType.STEPPED:
                kf_data["curve"] = "stepped"
            elif keyframe.curve == CurveType.BEZIER and keyframe.curve_params:
                kf_data["curve"] = [round(p, 4) for p in keyframe.curve_params]

        return kf_data


def write_skeleton(skeleton: Skeleton, path: Path, version: str = "4.1.0") -> Path:
    """
    Encode a skeleton and write it as JSON.

    Args:
        skeleton: Skeleton to write
        path: Target .json file
        version: Spine version string stored in the document

    Returns:
        The written path
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    document = SpineJsonEncoder(version).encode(skeleton)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(document, f, indent=2)
    logger.info("Wrote skeleton '%s' to %s", skeleton.name, path)
    return path
