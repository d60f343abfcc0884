"""Tests for the two-pass scene to skeleton conversion"""

import pytest

from builders import RecordingExporter, document, frame, instance, layer, shape, symbol, text
from converter.config import ConverterConfig
from converter.converter import Converter
from scene.model import ColorTransform, Contour, Edge, Matrix, Point, SceneElement
from spine.image_export import PillowImageExporter
from spine.skeleton import ClippingAttachment, TimelineType


def _convert(*selection, exporter=None, **config):
    converter = Converter(document(*selection), ConverterConfig(**config), exporter or RecordingExporter())
    return converter.convert_selection(), converter


def _graphic(name):
    return symbol(name, [layer("art", [frame(0, [shape()])])], item_type="graphic")


def test_hero_structure(hero, exporter):
    """Bones, slots and attachments follow the layer stack bottom first"""
    results, converter = _convert(instance(hero), exporter=exporter)

    assert len(results) == 1
    skeleton = results[0].skeleton
    assert skeleton.name == "hero"
    assert [b.name for b in skeleton.bones] == ["root", "body", "arm"]
    assert [s.name for s in skeleton.slots] == ["body_slot", "arm_slot"]
    assert skeleton.find_slot("body_slot").attachment == "shape_0"
    assert skeleton.find_slot("arm_slot").attachment == "arm_gfx"
    assert skeleton.find_bone("arm").x == pytest.approx(10.0)
    assert converter.diagnostics == []


def test_each_image_is_exported_once(hero, exporter):
    """Repeated instances of one library item share one image"""
    results, _ = _convert(instance(hero), exporter=exporter)

    assert exporter.calls == ["./images/shape_0.png", "./images/arm_gfx.png"]
    assert set(results[0].images) == {"shape_0", "arm_gfx"}


def test_hero_animation_keys(hero, exporter):
    """The arm moves and turns at frame 5, relative to its setup pose"""
    results, _ = _convert(instance(hero), exporter=exporter)

    animation = results[0].skeleton.animations["default"]
    group = animation.bone_timelines[results[0].skeleton.find_bone("arm")]
    translate = group.get(TimelineType.TRANSLATE).frames
    rotate = group.get(TimelineType.ROTATE).frames

    assert [k.time for k in translate] == pytest.approx([0.0, 5 / 24])
    assert translate[0].value == pytest.approx((0.0, 0.0))
    assert translate[1].value == pytest.approx((10.0, 0.0))
    assert rotate[1].value == pytest.approx(-90.0)


def test_empty_keyframe_hides_layer_slots(exporter):
    """An empty keyframe keys a null attachment on the layer's slots"""
    blinker = symbol("Blinker", [
        layer("eye", [
            frame(0, [instance(_graphic("eye_gfx"))], duration=5),
            frame(5, [], duration=5),
        ]),
    ])

    results, _ = _convert(instance(blinker), exporter=exporter)

    skeleton = results[0].skeleton
    slot = skeleton.find_slot("eye_slot")
    keys = skeleton.animations["default"].slot_timelines[slot].get(TimelineType.ATTACHMENT).frames
    assert [(k.time, k.value) for k in keys] == [(0.0, "eye_gfx"), (pytest.approx(5 / 24), None)]


def _masked_stage(mask_frame):
    return symbol("Stage", [
        layer("mask", [mask_frame], layer_type="mask"),
        layer("content", [frame(0, [shape()])], layer_type="masked"),
        layer("content2", [frame(0, [shape()])], layer_type="masked"),
        layer("bg", [frame(0, [shape()])]),
    ])


def test_mask_becomes_clipping_attachment(exporter):
    """The mask slot is created before the masked run and clips up to its last slot"""
    results, converter = _convert(instance(_masked_stage(frame(0, [shape()]))), exporter=exporter)

    skeleton = results[0].skeleton
    assert [s.name for s in skeleton.slots] == ["bg_slot", "mask_slot", "content2_slot", "content_slot"]

    mask_slot = skeleton.find_slot("mask_slot")
    clip = mask_slot.attachments["mask_clip"]
    assert isinstance(clip, ClippingAttachment)
    assert clip.end is skeleton.find_slot("content_slot")
    assert clip.vertex_count == 4
    assert mask_slot.attachment == "mask_clip"
    assert converter.diagnostics == []


def test_missing_mask_geometry_is_reported(exporter):
    """A mask layer without a shape leaves the run unclipped"""
    results, converter = _convert(instance(_masked_stage(frame(0, []))), exporter=exporter)

    skeleton = results[0].skeleton
    assert [s.name for s in skeleton.slots] == ["bg_slot", "content2_slot", "content_slot"]
    assert [d.kind for d in converter.diagnostics] == ["missing_mask_geometry"]
    assert converter.diagnostics[0].item == "stage"


def test_merge_mode_builds_one_skeleton(hero, exporter):
    """Merged items share a skeleton and get their own item bone"""
    villain = symbol("Villain", [
        layer("cape", [frame(0, [shape()])]),
        layer("boots", [frame(0, [shape()])]),
    ])

    results, _ = _convert(instance(hero), instance(villain), exporter=exporter, merge_skeletons=True)

    assert len(results) == 1
    skeleton = results[0].skeleton
    assert skeleton.name == "demo_scene"
    assert skeleton.find_bone("hero").parent.name == "root"
    assert skeleton.find_bone("villain/cape").parent is skeleton.find_bone("villain")
    assert skeleton.find_bone("hero/arm") is not None
    assert len(exporter.calls) == len(set(exporter.calls)) == 4


def test_nesting_depth_is_guarded(hero, exporter):
    """A self-referencing symbol fails alone, other items still convert"""
    loop = symbol("Loop", [layer("inner", [frame(0, [])])])
    loop.timeline.layers[0].frames[0].elements.append(instance(loop))

    results, converter = _convert(instance(loop), instance(hero), exporter=exporter, max_depth=5)

    assert [r.skeleton.name for r in results] == ["hero"]
    assert len(converter.diagnostics) == 1
    assert converter.diagnostics[0].kind == "conversion_failure"
    assert converter.diagnostics[0].item == "Loop"


def test_frame_comments_become_events(exporter):
    """Comment frames create skeleton events keyed at their time"""
    walker = symbol("Walker", [
        layer("feet", [
            frame(0, [shape()], duration=3),
            frame(3, [shape()], duration=2, label_type="comment", name="footstep"),
        ]),
    ])

    results, _ = _convert(instance(walker), exporter=exporter)
    skeleton = results[0].skeleton

    assert skeleton.events == ["footstep"]
    events = skeleton.animations["default"].events
    assert [e.name for e in events] == ["footstep"]
    assert events[0].time == pytest.approx(3 / 24)

    results, _ = _convert(instance(walker), exporter=RecordingExporter(), export_frame_comments_as_events=False)
    assert results[0].skeleton.events == []


def test_labels_become_animations(exporter):
    """Each label is its own animation starting at time zero"""
    mover = symbol("Mover", [
        layer("labels", [
            frame(0, duration=4, label_type="name", name="idle"),
            frame(4, duration=4, label_type="name", name="walk"),
        ]),
        layer("art", [
            frame(0, [shape()], duration=4),
            frame(4, [shape(matrix=Matrix(tx=5.0))], duration=4),
        ]),
    ])

    results, _ = _convert(instance(mover), exporter=exporter)
    skeleton = results[0].skeleton

    assert list(skeleton.animations) == ["idle", "walk"]
    walk = skeleton.animations["walk"].bone_timelines[skeleton.find_bone("art")]
    first = walk.get(TimelineType.TRANSLATE).frames[0]
    assert first.time == 0.0
    assert first.value == pytest.approx((5.0, 0.0))


def test_duplicate_names_in_frame_get_suffixes(exporter):
    """Elements sharing a name within one keyframe are numbered"""
    dots = symbol("Dots", [
        layer("dots", [frame(0, [shape(), shape()])]),
        layer("bg", [frame(0, [shape()])]),
    ])

    results, _ = _convert(instance(dots), exporter=exporter)
    names = [b.name for b in results[0].skeleton.bones]

    assert names == ["root", "bg", "dots", "dots_1"]


def test_failed_export_uses_placeholder(hero):
    """An image that cannot be written degrades to a 1x1 region"""
    exporter = RecordingExporter(fail_on=["shape_0"])
    results, converter = _convert(instance(hero), exporter=exporter)

    region = results[0].skeleton.find_slot("body_slot").attachments["shape_0"]
    assert (region.width, region.height) == (1, 1)
    assert [d.kind for d in converter.diagnostics] == ["image_export"]


def test_nested_tint_sets_slot_color(exporter):
    """A half transparent instance gives its slot half alpha"""
    ghost = symbol("Ghost", [
        layer("body", [frame(0, [instance(_graphic("sheet"), color=ColorTransform(alpha_percent=50.0))])]),
        layer("shadow", [frame(0, [shape()])]),
    ])

    results, _ = _convert(instance(ghost), exporter=exporter)

    assert results[0].skeleton.find_slot("body_slot").color == "ffffff80"
    assert results[0].skeleton.find_slot("shadow_slot").color == "ffffffff"


def test_text_is_skipped_when_disabled(exporter):
    """Text only becomes an image when text export is on"""
    sign = symbol("Sign", [
        layer("caption", [frame(0, [text()])]),
        layer("board", [frame(0, [shape()])]),
    ])

    results, _ = _convert(instance(sign), exporter=exporter, export_text_as_shapes=False)

    assert [s.name for s in results[0].skeleton.slots] == ["board_slot"]


def test_transform_root_bone(hero, exporter):
    """The selected instance's own transform can be kept on the root bone"""
    results, _ = _convert(instance(hero, matrix=Matrix(tx=100.0, ty=50.0)), exporter=exporter,
                          transform_root_bone=True)

    root = results[0].skeleton.find_bone("root")
    assert (root.x, root.y) == pytest.approx((100.0, -50.0))


def test_non_symbol_selection_is_reported(exporter):
    """Only symbol instances are converted"""
    results, converter = _convert(shape(), exporter=exporter)

    assert results == []
    assert [d.kind for d in converter.diagnostics] == ["unsupported_target"]


def test_simplify_names(exporter):
    """Nested bone paths are shortened on request"""
    outer = symbol("Outer", [
        layer("inner", [frame(0, [instance(symbol("Inner", [
            layer("a", [frame(0, [shape()])]),
            layer("b", [frame(0, [shape()])]),
        ]))])]),
        layer("base", [frame(0, [shape()])]),
    ])

    results, _ = _convert(instance(outer), exporter=exporter, simplify_bones_and_slots=True)

    assert [b.name for b in results[0].skeleton.bones] == ["root", "base", "inner", "b", "a"]
    assert "b_slot" in [s.name for s in results[0].skeleton.slots]


def test_shared_item_with_different_anchors():
    """Instances of one item anchored differently share the image but not the offset"""
    gfx = symbol("gfx", [layer("art", [frame(0, [shape(width=20.0, height=20.0)])])], item_type="graphic")
    pair = symbol("Pair", [
        layer("left", [frame(0, [instance(gfx, anchor=(0.0, 0.0))])]),
        layer("right", [frame(0, [instance(gfx, anchor=(20.0, 20.0))])]),
    ])

    results, _ = _convert(instance(pair), exporter=PillowImageExporter())
    skeleton = results[0].skeleton

    right = skeleton.find_slot("right_slot")
    assert right.attachment == "gfx"
    assert (right.attachments["gfx"].x, right.attachments["gfx"].y) == pytest.approx((-10.0, 10.0))

    left = skeleton.find_slot("left_slot")
    region = left.attachments["gfx_2"]
    assert left.attachment == "gfx_2"
    assert region.path == "gfx"
    assert (region.x, region.y) == pytest.approx((10.0, -10.0))
    assert set(results[0].images) == {"gfx"}

    keys = skeleton.animations["default"].slot_timelines[left].get(TimelineType.ATTACHMENT).frames
    assert [k.value for k in keys] == ["gfx_2"]


def test_label_starting_inside_a_span(exporter):
    """A later label starts from the spans covering its first frame, not the setup pose"""
    fighter = symbol("Fighter", [
        layer("labels", [
            frame(0, duration=10, label_type="name", name="idle"),
            frame(10, duration=10, label_type="name", name="walk"),
        ]),
        layer("weapon", [
            frame(0, [shape()], duration=5),
            frame(5, [], duration=10),
            frame(15, [shape()], duration=5),
        ]),
        layer("arm", [
            frame(0, [shape()], duration=5),
            frame(5, [shape(matrix=Matrix(tx=50.0))], duration=15),
        ]),
    ])

    results, _ = _convert(instance(fighter), exporter=exporter)
    skeleton = results[0].skeleton
    walk = skeleton.animations["walk"]

    weapon = walk.slot_timelines[skeleton.find_slot("weapon_slot")].get(TimelineType.ATTACHMENT).frames
    assert [(k.time, k.value) for k in weapon] == [(0.0, None), (pytest.approx(5 / 24), "shape_3")]

    arm = walk.bone_timelines[skeleton.find_bone("arm")].get(TimelineType.TRANSLATE).frames
    assert arm[0].time == 0.0
    assert arm[0].value == pytest.approx((50.0, 0.0))


def test_failed_item_leaves_merged_skeleton_untouched(exporter):
    """A merged item that fails midway is rolled back completely"""
    good = symbol("Good", [layer("art", [frame(0, [shape()])])])
    bad = symbol("Bad", [
        layer("broken", [frame(0, [instance(None, name="broken")])]),
        layer("first", [frame(0, [shape()])]),
    ])

    results, converter = _convert(instance(good), instance(bad), exporter=exporter, merge_skeletons=True)

    assert [d.kind for d in converter.diagnostics] == ["missing_identity"]
    skeleton = results[0].skeleton
    assert [b.name for b in skeleton.bones] == ["root", "good", "good/art"]
    assert [s.name for s in skeleton.slots] == ["good/art_slot"]
    assert set(results[0].images) == {"shape_0"}
    assert [b.name for b in skeleton.animations["default"].bone_timelines] == ["good/art"]


def test_merge_without_converted_items_has_no_result(exporter):
    bad = symbol("Bad", [layer("broken", [frame(0, [instance(None, name="broken")])])])

    results, converter = _convert(instance(bad), exporter=exporter, merge_skeletons=True)

    assert results == []
    assert [d.kind for d in converter.diagnostics] == ["missing_identity"]


def test_nested_timeline_stops_with_its_keyframe(exporter):
    """A nested timeline longer than the span holding it is cut, so keys stay in time order"""
    spinner = symbol("Spinner", [
        layer("blade", [frame(i, [shape(matrix=Matrix(tx=float(i)))]) for i in range(10)]),
    ])
    fan = symbol("Fan", [
        layer("rotor", [
            frame(0, [instance(spinner)], duration=4),
            frame(4, [instance(spinner, matrix=Matrix(tx=5.0))], duration=4),
        ]),
    ])

    results, _ = _convert(instance(fan), exporter=exporter)
    skeleton = results[0].skeleton

    blade = skeleton.animations["default"].bone_timelines[skeleton.find_bone("rotor/blade")]
    times = [k.time for k in blade.get(TimelineType.TRANSLATE).frames]
    assert times == pytest.approx([i / 24 for i in range(8)])
    assert times == sorted(times)


def test_mask_symbol_vertices_are_relative_to_its_bone(exporter):
    """A symbol mask clips with its first shape, offset from the instance anchor"""
    mask_gfx = symbol("mask_gfx", [layer("art", [frame(0, [shape(matrix=Matrix(tx=5.0))])])], item_type="graphic")
    stage = _masked_stage(frame(0, [instance(mask_gfx, anchor=(5.0, 5.0))]))

    results, converter = _convert(instance(stage), exporter=exporter)
    skeleton = results[0].skeleton

    bone = skeleton.find_bone("mask")
    assert (bone.x, bone.y) == pytest.approx((5.0, -5.0))
    clip = skeleton.find_slot("mask_slot").attachments["mask_clip"]
    assert clip.vertices == pytest.approx([0.0, 5.0, 10.0, 5.0, 10.0, -5.0, 0.0, -5.0])
    assert clip.end is skeleton.find_slot("content_slot")
    assert converter.diagnostics == []


def test_mask_symbol_without_shape_is_reported(exporter):
    """A mask symbol holding no vector shape skips clipping with one diagnostic"""
    empty = symbol("empty_mask", [layer("art", [frame(0, [text()])])], item_type="graphic")

    results, converter = _convert(instance(_masked_stage(frame(0, [instance(empty)]))), exporter=exporter)
    skeleton = results[0].skeleton

    assert [s.name for s in skeleton.slots] == ["bg_slot", "mask_slot", "content2_slot", "content_slot"]
    assert skeleton.find_slot("mask_slot").attachments == {}
    assert [d.kind for d in converter.diagnostics] == ["missing_mask_geometry"]


def test_malformed_mask_outline_is_reported_once(exporter):
    """An unreadable mask outline is one geometry diagnostic, not also a missing mask"""
    broken = SceneElement(
        element_type="shape",
        contours=[Contour(edges=[Edge(Point(0.0, 0.0), Point(10.0, 0.0), controls=[Point(), Point(), Point()])])],
    )

    results, converter = _convert(instance(_masked_stage(frame(0, [broken]))), exporter=exporter)

    assert "mask_clip" not in results[0].skeleton.find_slot("mask_slot").attachments
    assert [d.kind for d in converter.diagnostics] == ["unsupported_geometry"]
