"""
Scene graph to Spine skeleton converter.

Each selected symbol instance is walked twice over: one STRUCTURE pass
creates every bone, slot and attachment with its setup pose, then one
ANIMATION pass per frame label keys the same bones and slots over that
label's frame range.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from converter.config import ConverterConfig
from converter.context import AttachmentVariant, ConversionContext, Diagnostic, GlobalBuildState, Stage
from converter.curves import apply_slot_attachment
from converter.exceptions import (
    ConversionError,
    MissingMaskGeometryError,
    MissingRequiredIdentityError,
    UnsupportedGeometryTopologyError,
)
from converter.labels import FrameLabel
from converter.naming import (
    ROOT_BONE,
    is_primitive_item,
    raw_element_name,
    sanitize,
    shape_name,
)
from converter.transform import decompose
from scene.geometry import flatten_shape
from scene.model import Matrix, SceneDocument, SceneElement, SceneLayer, SceneTimeline
from spine.image_export import ImageExporter, PillowImageExporter, SpineImage
from spine.skeleton import (
    AttachmentType,
    ClippingAttachment,
    Skeleton,
    simplify_skeleton_names,
)

logger = logging.getLogger(__name__)

CLIP_CURVE_SEGMENTS = 32
# Instances whose image offsets differ by less than this share one attachment
OFFSET_TOLERANCE = 0.01
SKIPPED_LAYER_TYPES = ("guide", "folder")


@dataclass
class ConversionResult:
    """A finished skeleton and the images its attachments reference."""
    skeleton: Skeleton
    images: Dict[str, SpineImage] = field(default_factory=dict)


class Converter:
    """
    Converts symbol instances of a scene document into Spine skeletons.

    Args:
        document: Loaded scene document
        config: Conversion switches, defaults to ``ConverterConfig()``
        image_exporter: Collaborator writing attachment images
    """

    def __init__(
        self,
        document: SceneDocument,
        config: Optional[ConverterConfig] = None,
        image_exporter: Optional[ImageExporter] = None
    ):
        self.document = document
        self.config = config or ConverterConfig()
        self.image_exporter = image_exporter or PillowImageExporter()
        self.diagnostics: List[Diagnostic] = []

    def convert_selection(self, elements: Optional[List[SceneElement]] = None) -> List[ConversionResult]:
        """
        Convert every selected element.

        A failing item is logged and recorded as a diagnostic; the remaining
        items are still converted. In merge mode a failing item leaves nothing
        behind in the shared skeleton.

        Args:
            elements: Elements to convert, defaults to the document selection

        Returns:
            One result per converted item, or a single result in merge mode
        """
        if elements is None:
            elements = self.document.selection

        results: List[ConversionResult] = []
        merged: Optional[GlobalBuildState] = None
        merged_items = 0

        for element in elements:
            label = element.name or (element.library_item.name if element.library_item else "") or "<unnamed>"
            if not element.is_symbol_instance:
                message = f"'{label}' is a {element.element_type}, only symbol instances can be converted"
                logger.warning(message)
                self.diagnostics.append(Diagnostic("unsupported_target", message, label))
                continue

            checkpoint = None
            if self.config.merge_skeletons:
                if merged is None:
                    merged = GlobalBuildState.create(
                        self.config, sanitize(self.document.name), self.document.frame_rate, self.diagnostics
                    )
                checkpoint = merged.checkpoint()

            try:
                state = self.convert_symbol_instance(element, merged)
            except Exception as exc:
                self._report_failure(label, exc)
                if checkpoint is not None:
                    merged.restore(checkpoint)
                continue

            if merged is None:
                results.append(ConversionResult(state.skeleton, dict(state.exported)))
            else:
                merged_items += 1

        if merged is not None and merged_items:
            results.append(ConversionResult(merged.skeleton, dict(merged.exported)))

        if self.config.simplify_bones_and_slots:
            for result in results:
                simplify_skeleton_names(result.skeleton)

        logger.info("Converted %d skeleton(s), %d diagnostic(s)", len(results), len(self.diagnostics))
        return results

    def convert_symbol_instance(
        self,
        element: SceneElement,
        state: Optional[GlobalBuildState] = None
    ) -> GlobalBuildState:
        """
        Run the STRUCTURE pass and one ANIMATION pass per label for one item.

        Args:
            element: Top-level symbol instance
            state: Shared state in merge mode, otherwise a fresh one is created

        Returns:
            The build state holding the skeleton

        Raises:
            MissingRequiredIdentityError: If the item cannot be named
        """
        item_name = self._item_name(element)
        if state is None:
            state = GlobalBuildState.create(self.config, item_name, self.document.frame_rate, self.diagnostics)
        state.prepare(item_name, element)

        skeleton = state.skeleton
        bone = skeleton.find_bone(ROOT_BONE)
        if self.config.merge_skeletons and not self.config.merge_skeletons_root_bone:
            bone = skeleton.create_bone(item_name, bone)

        if self.config.transform_root_bone:
            pose = decompose(element)
            bone.x, bone.y, bone.rotation = pose.x, pose.y, pose.rotation
            bone.scale_x, bone.scale_y = pose.scale_x, pose.scale_y
            bone.shear_x, bone.shear_y = pose.shear_x, pose.shear_y
        bone.initialized = True

        context = ConversionContext.root(state, element, bone)
        logger.info("Converting '%s' (%d label(s))", item_name, len(state.labels))

        state.stage = Stage.STRUCTURE
        state.animation = None
        self._convert_content(context, None)

        for frame_label in state.labels:
            logger.debug("Animation '%s': frames %d-%d", frame_label.name,
                         frame_label.start_frame, frame_label.end_frame)
            state.stage = Stage.ANIMATION
            state.animation = skeleton.create_animation(frame_label.name)
            self._convert_content(context, frame_label)

        state.stage = Stage.STRUCTURE
        state.animation = None
        return state

    def _report_failure(self, label: str, exc: Exception):
        if isinstance(exc, MissingRequiredIdentityError):
            logger.error("Cannot convert '%s': %s", label, exc)
            self.diagnostics.append(Diagnostic("missing_identity", str(exc), label))
        elif isinstance(exc, ConversionError):
            logger.error("Conversion of '%s' failed: %s", label, exc)
            self.diagnostics.append(Diagnostic("conversion_failure", str(exc), label))
        else:
            logger.exception("Unexpected error while converting '%s'", label)
            self.diagnostics.append(Diagnostic("conversion_failure", f"{type(exc).__name__}: {exc}", label))

    def _item_name(self, element: SceneElement) -> str:
        if element.library_item is not None and element.library_item.name:
            return sanitize(element.library_item.name)
        if element.name:
            return sanitize(element.name)
        raise MissingRequiredIdentityError("Selected element has no library item and no instance name")

    def _convert_content(self, context: ConversionContext, label: Optional[FrameLabel]):
        element = context.element

        if element.element_type == "instance":
            if element.library_item is None:
                raise MissingRequiredIdentityError(
                    f"Instance '{element.name}' in bone '{context.bone.name}' has no library item"
                )
            if element.is_symbol_instance and not is_primitive_item(element.library_item):
                self._convert_composite(context, label)
            else:
                self._convert_image(context)
        elif element.is_shape or (element.element_type == "text" and self.config.export_text_as_shapes):
            self._convert_image(context)
        else:
            logger.debug("Skipping %s element in bone '%s'", element.element_type, context.bone.name)

    def _convert_composite(self, context: ConversionContext, label: Optional[FrameLabel]):
        state = context.global_state
        layers = context.element.timeline.layers

        clip: Optional[ClippingAttachment] = None
        run_open = False

        # Bottom layer first, so slot creation order is draw order
        for index in range(len(layers) - 1, -1, -1):
            layer = layers[index]

            if layer.layer_type == "mask":
                clip = None
                run_open = False
                continue
            if not layer.visible or layer.layer_type in SKIPPED_LAYER_TYPES:
                continue

            layer_context = context
            if layer.layer_type == "masked":
                if not run_open:
                    run_open = True
                    clip = self._open_mask(context, layers, index, label)
                if clip is not None:
                    layer_context = context.with_clip(clip)

            self._convert_layer(layer_context, layer, label)

        if clip is not None and state.stage is Stage.STRUCTURE and clip.end is None:
            logger.debug("Clip '%s' masks no slot", clip.name)

    def _open_mask(
        self,
        context: ConversionContext,
        layers: List[SceneLayer],
        index: int,
        label: Optional[FrameLabel]
    ) -> Optional[ClippingAttachment]:
        """Convert the mask layer above a masked run and return its clip."""
        mask_layer = None
        for above in range(index - 1, -1, -1):
            layer_type = layers[above].layer_type
            if layer_type == "masked":
                continue
            if layer_type == "mask":
                mask_layer = layers[above]
            break

        if mask_layer is None:
            logger.debug("Masked layer '%s' has no mask layer above it", layers[index].name)
            return None

        state = context.global_state
        reported = len(state.diagnostics)
        clip = self._convert_layer(context.with_clip(None), mask_layer, label, mask=True)
        # A malformed outline has already been reported while converting the layer
        if clip is None and state.stage is Stage.STRUCTURE and len(state.diagnostics) == reported:
            state.record(
                "missing_mask_geometry",
                f"Mask layer '{mask_layer.name}' has no vector shape, masking skipped",
            )
        return clip

    def _convert_layer(
        self,
        context: ConversionContext,
        layer: SceneLayer,
        label: Optional[FrameLabel],
        mask: bool = False
    ) -> Optional[ClippingAttachment]:
        state = context.global_state
        layer_context = context.with_layer(layer)

        start, end = 0, layer.frame_count - 1
        enclosing = context.parent.frame if context.parent is not None else None
        if context.parent is None and label is not None:
            start, end = label.start_frame, min(label.end_frame, end)
        elif enclosing is not None:
            # Nested content only plays while the keyframe holding it lasts
            end = min(end, enclosing.duration - 1)

        clip: Optional[ClippingAttachment] = None
        for index in range(start, end + 1):
            frame = layer.frame_at(index)
            if frame is None:
                continue
            # A label starting inside a span still keys the state of that span
            continued = frame.start_frame != index
            if continued and not (label is not None and index == start):
                continue

            time = context.time + (index - start) / state.frame_rate
            frame_context = layer_context.with_frame(frame)

            is_event = frame.label_type == "comment" and frame.name and self.config.export_frame_comments_as_events
            if is_event and not continued:
                state.skeleton.create_event(frame.name)
                if state.stage is Stage.ANIMATION:
                    state.animation.add_event(frame.name, time)

            if not frame.elements:
                if state.stage is Stage.ANIMATION:
                    for slot in layer_context.layer_slots():
                        apply_slot_attachment(frame_context, slot, None, time)
                continue

            counters: Dict[str, int] = {}
            for element in frame.elements:
                name = self._element_name(frame_context, element, counters)
                if mask:
                    found = self._convert_mask_element(frame_context, element, name, time)
                    clip = clip or found
                else:
                    child = frame_context.create_bone(element, name, time)
                    self._convert_content(child, None)

        return clip

    def _element_name(self, context: ConversionContext, element: SceneElement, counters: Dict[str, int]) -> str:
        """Bone-local name of ``element``, suffixed when repeated within one frame."""
        raw = raw_element_name(element, context.layer)
        if raw:
            base = sanitize(raw)
        elif element.element_type == "instance":
            raise MissingRequiredIdentityError(
                f"Instance in layer '{context.layer.name if context.layer else ''}' cannot be named"
            )
        else:
            base = self._attachment_name(context.global_state, element).rsplit("/", 1)[-1]

        count = counters.get(base, 0)
        counters[base] = count + 1
        return base if count == 0 else f"{base}_{count}"

    def _attachment_name(self, state: GlobalBuildState, element: SceneElement) -> str:
        """Attachment name shared by every instance of a library item, or unique per shape."""
        key = element.library_item if element.element_type == "instance" else element
        name = state.assets.get(key)
        if name is not None:
            return name

        prefix = state.attachment_prefix
        taken = state.attachment_names()
        if key is element:
            name = prefix + shape_name(v[len(prefix):] for v in taken if v.startswith(prefix))
        else:
            base = prefix + sanitize(element.library_item.name)
            name = base
            counter = 2
            while name in taken:
                name = f"{base}_{counter}"
                counter += 1

        state.assets.set(key, name)
        return name

    def _export_image(self, context: ConversionContext, attachment_name: str) -> SpineImage:
        state = context.global_state
        target = state.image_path(attachment_name)
        image = state.images.get(target)
        if image is not None:
            return image

        try:
            image = self.image_exporter.export(context, target)
        except UnsupportedGeometryTopologyError as exc:
            state.record("unsupported_geometry", f"{attachment_name}: {exc}")
            image = SpineImage(target, 1, 1)
        except (OSError, ValueError) as exc:
            state.record("image_export", f"{attachment_name}: {exc}")
            image = SpineImage(target, 1, 1)

        state.images[target] = image
        state.exported[attachment_name] = image
        return image

    def _convert_image(self, context: ConversionContext):
        """Leaf export: one slot showing one region attachment."""
        state = context.global_state
        slot = context.create_slot()
        name = self._attachment_name(state, context.element)
        image = self._export_image(context, name)
        variant = self._attachment_variant(context, name, image)

        if state.stage is Stage.ANIMATION:
            apply_slot_attachment(context, slot, variant.name, context.time)
            return

        attachment = slot.create_attachment(variant.name, AttachmentType.REGION)
        if attachment.path is None:
            attachment.path = name
            attachment.width = image.width
            attachment.height = image.height
            attachment.scale_x = attachment.scale_y = 1.0 / image.scale if image.scale else 1.0
            attachment.x = variant.x
            attachment.y = variant.y

        frame = context.parent.frame if context.parent is not None else None
        if slot.attachment is None and (frame is None or frame.start_frame == 0):
            slot.attachment = variant.name

    def _attachment_variant(self, context: ConversionContext, name: str, image: SpineImage) -> AttachmentVariant:
        """
        Attachment placing image ``name`` at this element's anchor.

        Instances of one library item share one image but may use different
        anchors; each distinct offset gets its own attachment, named
        ``<name>_<n>``, whose path is still the shared image.
        """
        state = context.global_state
        x, y = image.offset_for(context.element.transformation_point)
        variants = state.variants.setdefault(name, [])
        for variant in variants:
            if abs(variant.x - x) < OFFSET_TOLERANCE and abs(variant.y - y) < OFFSET_TOLERANCE:
                return variant

        variant_name = name
        if variants:
            taken = state.attachment_names()
            counter = len(variants) + 1
            variant_name = f"{name}_{counter}"
            while variant_name in taken:
                counter += 1
                variant_name = f"{name}_{counter}"
            logger.debug("Attachment %s is placed at a new offset (%.2f, %.2f) as %s", name, x, y, variant_name)

        variant = AttachmentVariant(variant_name, x, y)
        variants.append(variant)
        return variant

    def _convert_mask_element(
        self,
        context: ConversionContext,
        element: SceneElement,
        name: str,
        time: float
    ) -> Optional[ClippingAttachment]:
        state = context.global_state
        child = context.create_bone(element, name, time, masked=True)
        slot = child.create_slot()
        clip_name = f"{child.bone.name.rsplit('/', 1)[-1]}_clip"

        if state.stage is Stage.ANIMATION:
            if clip_name in slot.attachments:
                apply_slot_attachment(child, slot, clip_name, time)
            return None

        try:
            vertices = self._mask_vertices(element)
        except MissingMaskGeometryError as exc:
            logger.debug("No clip for mask element '%s': %s", name, exc)
            return None
        except UnsupportedGeometryTopologyError as exc:
            state.record("unsupported_geometry", f"Mask '{name}': {exc}")
            vertices = []

        if len(vertices) < 6:
            return None

        clip = slot.create_attachment(clip_name, AttachmentType.CLIPPING)
        if not clip.vertices:
            clip.vertices = vertices
        if slot.attachment is None:
            slot.attachment = clip_name
        return clip

    def _mask_vertices(self, element: SceneElement) -> List[float]:
        """
        Clip polygon of a mask element, relative to the element's bone.

        Raises:
            MissingMaskGeometryError: If no vector shape is found
        """
        anchor = element.transformation_point
        if element.is_shape:
            shape, matrix = element, Matrix()
        elif element.is_symbol_instance and element.timeline is not None:
            found = self._find_mask_shape(element.timeline, Matrix(), 0)
            if found is None:
                raise MissingMaskGeometryError(f"symbol '{element.library_item.name}' holds no shape")
            shape, matrix = found
        else:
            raise MissingMaskGeometryError(f"{element.element_type} elements cannot mask")

        vertices = flatten_shape(shape, CLIP_CURVE_SEGMENTS, matrix.translated(-anchor.x, -anchor.y))
        return vertices or []

    def _find_mask_shape(
        self,
        timeline: SceneTimeline,
        matrix: Matrix,
        depth: int
    ) -> Optional[Tuple[SceneElement, Matrix]]:
        """Depth-first search for the first shape on a normal layer, with its matrix into ``timeline`` space."""
        if depth > self.config.max_depth:
            return None
        for layer in timeline.layers:
            if layer.layer_type != "normal":
                continue
            for frame in layer.frames:
                for element in frame.elements:
                    if element.is_shape:
                        return element, element.matrix.concat(matrix)
                    if element.is_symbol_instance and element.timeline is not None:
                        found = self._find_mask_shape(element.timeline, element.matrix.concat(matrix), depth + 1)
                        if found is not None:
                            return found
        return None
