"""
Skeleton Model

Abstract Spine skeleton under construction: bones, slots, attachments,
events and named animations made of keyframe timelines. Everything is
get-or-create by name so repeated visits of the same scene node reuse the
objects created on the first visit.
"""

from __future__ import annotations

import bisect
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class CurveType(Enum):
    """Animation curve types."""
    LINEAR = "linear"
    STEPPED = "stepped"
    BEZIER = "bezier"


class TimelineType(Enum):
    ROTATE = "rotate"
    TRANSLATE = "translate"
    SCALE = "scale"
    SHEAR = "shear"
    ATTACHMENT = "attachment"
    COLOR = "rgba"


class BlendMode(Enum):
    NORMAL = "normal"
    ADDITIVE = "additive"
    MULTIPLY = "multiply"
    SCREEN = "screen"


class AttachmentType(Enum):
    REGION = "region"
    CLIPPING = "clipping"


@dataclass
class Keyframe:
    """Represents a single keyframe in a timeline."""
    time: float
    value: Any = None
    curve: CurveType = CurveType.LINEAR
    curve_params: Optional[List[float]] = None  # For bezier curves: [cx1, cy1, cx2, cy2]


@dataclass
class Timeline:
    """Keyframes of one property, kept sorted by time."""
    type: TimelineType
    frames: List[Keyframe] = field(default_factory=list)

    @property
    def last(self) -> Optional[Keyframe]:
        return self.frames[-1] if self.frames else None

    def create_frame(
        self,
        time: float,
        curve: CurveType = CurveType.LINEAR,
        curve_params: Optional[List[float]] = None
    ) -> Keyframe:
        """Insert a keyframe in time order, or reuse the one already at ``time``."""
        index = bisect.bisect_left([k.time for k in self.frames], time)
        if index < len(self.frames) and self.frames[index].time == time:
            existing = self.frames[index]
            existing.curve = curve
            existing.curve_params = curve_params
            return existing

        frame = Keyframe(time=time, curve=curve, curve_params=curve_params)
        self.frames.insert(index, frame)
        return frame


@dataclass
class TimelineGroup:
    """All timelines of one bone or slot inside an animation."""
    timelines: Dict[TimelineType, Timeline] = field(default_factory=dict)

    def get(self, timeline_type: TimelineType) -> Timeline:
        if timeline_type not in self.timelines:
            self.timelines[timeline_type] = Timeline(type=timeline_type)
        return self.timelines[timeline_type]


@dataclass(eq=False)
class Bone:
    name: str
    parent: Optional["Bone"] = None
    x: float = 0.0
    y: float = 0.0
    rotation: float = 0.0
    scale_x: float = 1.0
    scale_y: float = 1.0
    shear_x: float = 0.0
    shear_y: float = 0.0
    initialized: bool = False


@dataclass(eq=False)
class Attachment:
    name: str

    @property
    def type(self) -> AttachmentType:
        raise NotImplementedError


@dataclass(eq=False)
class RegionAttachment(Attachment):
    path: Optional[str] = None
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0
    scale_x: float = 1.0
    scale_y: float = 1.0
    rotation: float = 0.0

    @property
    def type(self) -> AttachmentType:
        return AttachmentType.REGION


@dataclass(eq=False)
class ClippingAttachment(Attachment):
    end: Optional["Slot"] = None
    vertices: List[float] = field(default_factory=list)

    @property
    def type(self) -> AttachmentType:
        return AttachmentType.CLIPPING

    @property
    def vertex_count(self) -> int:
        return len(self.vertices) // 2


@dataclass(eq=False)
class Slot:
    name: str
    bone: Bone
    color: str = "ffffffff"
    blend: BlendMode = BlendMode.NORMAL
    attachment: Optional[str] = None
    attachments: Dict[str, Attachment] = field(default_factory=dict)
    initialized: bool = False

    def create_attachment(self, name: str, attachment_type: AttachmentType) -> Attachment:
        """Get the slot's attachment with this name, creating it if needed."""
        existing = self.attachments.get(name)
        if existing is not None:
            return existing

        if attachment_type == AttachmentType.CLIPPING:
            attachment: Attachment = ClippingAttachment(name=name)
        else:
            attachment = RegionAttachment(name=name)
        self.attachments[name] = attachment
        return attachment


@dataclass
class EventKey:
    time: float
    name: str


@dataclass
class Animation:
    """Represents a complete animation."""
    name: str
    bone_timelines: Dict[Bone, TimelineGroup] = field(default_factory=dict)
    slot_timelines: Dict[Slot, TimelineGroup] = field(default_factory=dict)
    events: List[EventKey] = field(default_factory=list)

    def get_or_create_bone_timeline(self, bone: Bone) -> TimelineGroup:
        """Get existing timeline group or create a new one for a bone."""
        if bone not in self.bone_timelines:
            self.bone_timelines[bone] = TimelineGroup()
        return self.bone_timelines[bone]

    def get_or_create_slot_timeline(self, slot: Slot) -> TimelineGroup:
        """Get existing timeline group or create a new one for a slot."""
        if slot not in self.slot_timelines:
            self.slot_timelines[slot] = TimelineGroup()
        return self.slot_timelines[slot]

    def add_event(self, name: str, time: float):
        self.events.append(EventKey(time=time, name=name))


class Skeleton:
    """
    A skeleton under construction.

    Bones and slots are unique by name; slots keep creation order, which is
    the draw order (first slot is drawn first).
    """

    def __init__(self, name: str = "skeleton", images_path: str = "./images/"):
        self.name = name
        self.images_path = images_path
        self.bones: List[Bone] = []
        self.slots: List[Slot] = []
        self.events: List[str] = []
        self.animations: Dict[str, Animation] = {}
        self._bones: Dict[str, Bone] = {}
        self._slots: Dict[str, Slot] = {}

    def create_bone(self, name: str, parent: Optional[Bone] = None) -> Bone:
        bone = self._bones.get(name)
        if bone is None:
            bone = Bone(name=name, parent=parent)
            self._bones[name] = bone
            self.bones.append(bone)
        return bone

    def create_slot(self, name: str, bone: Bone) -> Slot:
        slot = self._slots.get(name)
        if slot is None:
            slot = Slot(name=name, bone=bone)
            self._slots[name] = slot
            self.slots.append(slot)
        return slot

    def create_animation(self, name: str) -> Animation:
        animation = self.animations.get(name)
        if animation is None:
            animation = Animation(name=name)
            self.animations[name] = animation
        return animation

    def create_event(self, name: str):
        if name not in self.events:
            self.events.append(name)

    def find_bone(self, name: str) -> Optional[Bone]:
        return self._bones.get(name)

    def find_slot(self, name: str) -> Optional[Slot]:
        return self._slots.get(name)

    def rename_bone(self, bone: Bone, name: str):
        del self._bones[bone.name]
        bone.name = name
        self._bones[name] = bone

    def rename_slot(self, slot: Slot, name: str):
        del self._slots[slot.name]
        slot.name = name
        self._slots[name] = slot


def simplify_skeleton_names(skeleton: Skeleton):
    """
    Shorten ``parent/child`` bone paths to their last segment where that
    stays unique, and rename ``<bone>_slot`` slots to follow their bone.

    Timelines reference bones and slots by object, so animations follow
    the rename automatically.
    """
    taken = set()
    renames: Dict[Bone, str] = {}
    for bone in skeleton.bones:
        short = bone.name.rsplit("/", 1)[-1]
        candidate = short
        counter = 2
        while candidate in taken:
            candidate = f"{short}_{counter}"
            counter += 1
        taken.add(candidate)
        renames[bone] = candidate

    old_names = {bone: bone.name for bone in skeleton.bones}
    for bone, name in renames.items():
        if bone.name != name:
            skeleton.rename_bone(bone, f"\0{name}")
    for bone, name in renames.items():
        if bone.name != name:
            skeleton.rename_bone(bone, name)

    for slot in skeleton.slots:
        old_bone_name = old_names.get(slot.bone)
        if old_bone_name is not None and slot.name == f"{old_bone_name}_slot":
            new_name = f"{slot.bone.name}_slot"
            if new_name != slot.name and skeleton.find_slot(new_name) is None:
                skeleton.rename_slot(slot, new_name)
