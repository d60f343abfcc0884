"""Tests for naming and primitive classification"""

from builders import frame, instance, layer, shape, symbol
from converter.naming import (
    bone_name,
    blend_mode,
    is_primitive_item,
    raw_element_name,
    sanitize,
    shape_name,
    slot_name,
)
from scene.model import LibraryItem
from spine.skeleton import BlendMode


def test_sanitize():
    """Names become lowercase identifiers"""
    assert sanitize("Arm / Left.png") == "arm_left_png"
    assert sanitize("__Head__") == "head"
    assert sanitize("a--b  c") == "a_b_c"
    assert sanitize("") == "unnamed"
    assert sanitize(None) == "unnamed"
    assert sanitize("%%") == "unnamed"


def test_instance_name_priority():
    """Instance name wins over layer name, which wins over item name"""
    item = symbol("Gear", [])
    art = layer("Art", [])

    assert raw_element_name(instance(item, name="wheel"), art) == "wheel"
    assert raw_element_name(instance(item), art) == "Art"
    assert raw_element_name(instance(item), layer("", [])) == "Gear"
    assert raw_element_name(instance(None), None) == ""


def test_shapes_are_named_by_layer_only():
    """Shapes take the layer name or nothing"""
    assert raw_element_name(shape(name="ignored"), layer("Body", [])) == "Body"
    assert raw_element_name(shape(), None) == ""


def test_shape_name_picks_first_free_index():
    """Generated shape names fill the lowest gap"""
    assert shape_name([]) == "shape_0"
    assert shape_name(["shape_0", "shape_2"]) == "shape_1"


def test_bone_and_slot_names():
    """Nested bones are path-qualified below the root"""
    assert bone_name("arm", "root") == "arm"
    assert bone_name("hand", "arm") == "arm/hand"
    assert slot_name("arm/hand") == "arm/hand_slot"


def test_blend_mode_mapping():
    """Add maps to additive, unknown modes to normal"""
    assert blend_mode("add") is BlendMode.ADDITIVE
    assert blend_mode("multiply") is BlendMode.MULTIPLY
    assert blend_mode("screen") is BlendMode.SCREEN
    assert blend_mode("overlay") is BlendMode.NORMAL


def test_bitmaps_and_empty_items_are_primitive():
    """Items without a timeline are exported as an image"""
    assert is_primitive_item(None)
    assert is_primitive_item(LibraryItem("photo", item_type="bitmap"))
    assert is_primitive_item(LibraryItem("blank", item_type="graphic"))


def test_single_static_layer_is_primitive():
    """One layer with one keyframe of plain art is flattened"""
    item = symbol("leaf", [
        layer("art", [frame(0, [shape()])]),
        layer("guide", [frame(0, [shape()])], layer_type="guide"),
        layer("hidden", [frame(0, [shape()])], visible=False),
    ])

    assert is_primitive_item(item)


def test_composite_symbols_are_not_primitive():
    """Several layers, several keyframes or nested symbols keep the hierarchy"""
    leaf = symbol("leaf", [layer("art", [frame(0, [shape()])])])

    two_layers = symbol("a", [layer("x", [frame(0, [shape()])]), layer("y", [frame(0, [shape()])])])
    two_frames = symbol("b", [layer("x", [frame(0, [shape()]), frame(1, [shape()])])])
    nested = symbol("c", [layer("x", [frame(0, [instance(leaf)])])])
    masked = symbol("d", [layer("x", [frame(0, [shape()])], layer_type="mask")])

    assert not is_primitive_item(two_layers)
    assert not is_primitive_item(two_frames)
    assert not is_primitive_item(nested)
    assert not is_primitive_item(masked)
