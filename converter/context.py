"""
Conversion state.

``GlobalBuildState`` is the one mutable object of a conversion run: the
skeleton under construction, the dedup caches, the label ranges and the
current pass. ``ConversionContext`` is the per-node view of it; descending
into a layer, frame or element derives a new context and never changes the
parent one.
"""

from __future__ import annotations

import copy
import logging
import posixpath
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Iterator, List, Optional, Set, Tuple

from converter.cache import IdentityCache
from converter.color import TintChain
from converter.config import ConverterConfig
from converter.curves import apply_bone_animation, apply_slot_color
from converter.exceptions import NestingDepthExceededError
from converter.labels import FrameLabel, derive_labels
from converter.naming import ROOT_BONE, blend_mode, bone_name, slot_name
from converter.transform import BonePose, decompose
from scene.model import Point, SceneElement, SceneFrame, SceneLayer
from spine.image_export import SpineImage
from spine.skeleton import Animation, BlendMode, Bone, ClippingAttachment, Skeleton, Slot

logger = logging.getLogger(__name__)


class Stage(Enum):
    STRUCTURE = "structure"
    ANIMATION = "animation"


@dataclass
class Diagnostic:
    """A recoverable problem met while converting ``item``."""
    kind: str
    message: str
    item: str = ""


@dataclass
class AttachmentVariant:
    """A region attachment of a shared image, placed at one anchor-to-centre offset."""
    name: str
    x: float
    y: float


class GlobalBuildState:
    """
    Shared state of one top-level conversion, or of a whole selection in
    merge mode.

    Attributes:
        images: Export path -> measured image, so each file is exported once
        exported: Attachment name -> image, the manifest of the skeleton
        assets: Element or library item (by identity) -> attachment name
        layers: Layer (by identity) -> slots created beneath it
        poses: Bone name -> most recent decomposed pose
        variants: Base attachment name -> the offsets it is placed at
    """

    def __init__(
        self,
        config: ConverterConfig,
        skeleton: Skeleton,
        frame_rate: float,
        diagnostics: Optional[List[Diagnostic]] = None
    ):
        self.config = config
        self.skeleton = skeleton
        self.frame_rate = frame_rate or 24.0
        self.images: Dict[str, SpineImage] = {}
        self.exported: Dict[str, SpineImage] = {}
        self.assets: IdentityCache[str] = IdentityCache()
        self.layers: IdentityCache[List[Slot]] = IdentityCache()
        self.poses: Dict[str, BonePose] = {}
        self.variants: Dict[str, List[AttachmentVariant]] = {}
        self.labels: List[FrameLabel] = []
        self.stage = Stage.STRUCTURE
        self.animation: Optional[Animation] = None
        self.diagnostics = diagnostics if diagnostics is not None else []
        self.item_name = ""
        self.attachment_prefix = ""

        root = skeleton.create_bone(ROOT_BONE)
        root.initialized = True

    @classmethod
    def create(
        cls,
        config: ConverterConfig,
        name: str,
        frame_rate: float,
        diagnostics: Optional[List[Diagnostic]] = None
    ) -> "GlobalBuildState":
        images_path = config.images_export_path
        if config.append_skeleton_to_images_path and not config.merge_skeletons:
            images_path = posixpath.join(images_path, name) + "/"
        return cls(config, Skeleton(name, images_path), frame_rate, diagnostics)

    def prepare(self, item_name: str, element: SceneElement):
        """Reset the per-item fields before converting the next top-level item."""
        self.item_name = item_name
        self.labels = derive_labels(element.timeline)
        self.stage = Stage.STRUCTURE
        self.animation = None
        if self.config.merge_skeletons and self.config.append_skeleton_to_images_path:
            self.attachment_prefix = f"{item_name}/"
        else:
            self.attachment_prefix = ""

    def image_path(self, attachment_name: str) -> str:
        return posixpath.join(self.skeleton.images_path, f"{attachment_name}.png")

    def record(self, kind: str, message: str):
        logger.warning("[%s] %s", kind, message)
        self.diagnostics.append(Diagnostic(kind, message, self.item_name))

    def attachment_names(self) -> Set[str]:
        names = set(self.assets.values())
        names.update(v.name for variants in self.variants.values() for v in variants)
        return names

    def checkpoint(self) -> Tuple:
        """
        Copy everything converting one item can change, so a failed item in
        merge mode can be rolled back with ``restore``. Diagnostics are kept.
        """
        return copy.deepcopy((self.skeleton, self.images, self.exported, self.assets,
                              self.layers, self.poses, self.variants))

    def restore(self, checkpoint: Tuple):
        (self.skeleton, self.images, self.exported, self.assets,
         self.layers, self.poses, self.variants) = checkpoint


@dataclass(frozen=True, eq=False)
class ConversionContext:
    global_state: GlobalBuildState
    parent: Optional["ConversionContext"] = None
    element: Optional[SceneElement] = None
    bone: Optional[Bone] = None
    layer: Optional[SceneLayer] = None
    frame: Optional[SceneFrame] = None
    clip: Optional[ClippingAttachment] = None
    tint: TintChain = field(default_factory=TintChain)
    blend_mode: BlendMode = BlendMode.NORMAL
    time: float = 0.0
    parent_offset: Point = field(default_factory=Point)
    depth: int = 0

    @classmethod
    def root(cls, global_state: GlobalBuildState, element: SceneElement, bone: Bone) -> "ConversionContext":
        anchor = element.transformation_point
        return cls(
            global_state=global_state,
            element=element,
            bone=bone,
            parent_offset=Point(-anchor.x, -anchor.y),
        )

    def ancestors(self) -> Iterator["ConversionContext"]:
        """This context followed by every enclosing one, up to the root."""
        context: Optional[ConversionContext] = self
        while context is not None:
            yield context
            context = context.parent

    def with_layer(self, layer: SceneLayer) -> "ConversionContext":
        self.global_state.layers.setdefault(layer, [])
        return replace(self, layer=layer, frame=None)

    def with_frame(self, frame: SceneFrame) -> "ConversionContext":
        return replace(self, frame=frame)

    def with_clip(self, clip: Optional[ClippingAttachment]) -> "ConversionContext":
        return replace(self, clip=clip)

    def layer_slots(self) -> List[Slot]:
        if self.layer is None:
            return []
        return self.global_state.layers.get(self.layer, [])

    def create_bone(
        self,
        element: SceneElement,
        name: str,
        time: float,
        masked: bool = False
    ) -> "ConversionContext":
        """
        Get or create the bone of ``element`` under this context's bone and
        return the child context for it.

        The STRUCTURE pass sets the setup pose on first visit; the ANIMATION
        pass keys the pose relative to it.

        Raises:
            NestingDepthExceededError: If the bone would nest deeper than ``max_depth``
        """
        state = self.global_state
        depth = self.depth + 1
        if depth > state.config.max_depth:
            raise NestingDepthExceededError(
                f"Nesting deeper than {state.config.max_depth} levels at '{self.bone.name}/{name}'"
            )

        full_name = bone_name(name, self.bone.name)
        bone = state.skeleton.create_bone(full_name, self.bone)

        previous = state.poses.get(full_name)
        pose = decompose(element, previous, masked)
        pose.x += self.parent_offset.x
        pose.y -= self.parent_offset.y
        if previous is not None and abs(pose.rotation - previous.rotation) > 180.0:
            logger.debug("Bone %s rotation jumps %.2f -> %.2f", full_name, previous.rotation, pose.rotation)
        state.poses[full_name] = pose

        mode = blend_mode(element.blend_mode)
        if mode is BlendMode.NORMAL:
            mode = self.blend_mode

        anchor = element.transformation_point
        child = ConversionContext(
            global_state=state,
            parent=self,
            element=element,
            bone=bone,
            clip=self.clip,
            tint=self.tint.blend(element),
            blend_mode=mode,
            time=time,
            parent_offset=Point(-anchor.x, -anchor.y),
            depth=depth,
        )

        if state.stage is Stage.STRUCTURE:
            if not bone.initialized:
                bone.x, bone.y = pose.x, pose.y
                bone.rotation = pose.rotation
                bone.scale_x, bone.scale_y = pose.scale_x, pose.scale_y
                bone.shear_x, bone.shear_y = pose.shear_x, pose.shear_y
                bone.initialized = True
        else:
            apply_bone_animation(child, bone, pose, time)

        return child

    def create_slot(self) -> Slot:
        """
        Get or create the slot of this context's bone.

        A new slot is registered with every enclosing layer and, while a
        clip is open, becomes the clip's end slot.
        """
        state = self.global_state
        slot = state.skeleton.create_slot(slot_name(self.bone.name), self.bone)
        color = self.tint.merge().to_hex()

        if state.stage is Stage.STRUCTURE:
            if not slot.initialized:
                slot.color = color
                slot.blend = self.blend_mode
                slot.initialized = True
                for context in self.ancestors():
                    if context.layer is not None:
                        slots = state.layers.setdefault(context.layer, [])
                        if slot not in slots:
                            slots.append(slot)
                if self.clip is not None:
                    self.clip.end = slot
        else:
            apply_slot_color(self, slot, color, self.time)

        return slot
