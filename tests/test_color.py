"""Tests for tint chain composition"""

import pytest

from builders import instance, symbol
from converter.color import Color, TintChain
from scene.model import ColorTransform

ITEM = symbol("item", [])


def test_neutral_chain_is_white():
    """An empty chain merges to opaque white"""
    assert TintChain().merge() == Color(1.0, 1.0, 1.0, 1.0)
    assert TintChain().merge().to_hex() == "ffffffff"


def test_merge_is_innermost_first():
    """Nodes are folded from the current element outward, and order matters"""
    outer = instance(ITEM, color=ColorTransform(red_amount=127.5))
    inner = instance(ITEM, color=ColorTransform(red_percent=50.0))

    chain = TintChain().blend(outer).blend(inner)
    reversed_chain = TintChain().blend(inner).blend(outer)

    assert chain.merge().red == pytest.approx(1.0)
    assert reversed_chain.merge().red == pytest.approx(0.5)


def test_blend_does_not_mutate_parent():
    """Blending returns a new chain and leaves the original untouched"""
    base = TintChain().blend(instance(ITEM, color=ColorTransform(alpha_percent=50.0)))
    child = base.blend(instance(ITEM, color=ColorTransform(alpha_percent=50.0)))

    assert len(base.nodes()) == 1
    assert len(child.nodes()) == 2
    assert base.merge().alpha == pytest.approx(0.5)
    assert child.merge().alpha == pytest.approx(0.25)


def test_hidden_ancestor_hides_everything():
    """Once a node is invisible, alpha stays zero"""
    hidden = instance(ITEM, visible=False)
    bright = instance(ITEM, color=ColorTransform(alpha_amount=255.0))

    assert TintChain().blend(hidden).blend(bright).merge().alpha == 0.0
    assert TintChain().blend(bright).blend(hidden).merge().alpha == 0.0


def test_channels_are_clamped():
    """Amounts push channels at most to the valid range"""
    element = instance(ITEM, color=ColorTransform(green_amount=300.0, blue_amount=-300.0))
    color = TintChain().blend(element).merge()

    assert color.green == 1.0
    assert color.blue == 0.0


def test_hex_encoding():
    """Colors are written as rrggbbaa"""
    assert Color(1.0, 0.0, 0.0, 1.0).to_hex() == "ff0000ff"
    assert Color(0.0, 0.5, 1.0, 0.0).to_hex() == "0080ff00"
