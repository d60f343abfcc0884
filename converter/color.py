"""
Tint chain.

Each nesting level contributes its element's color transform; the chain is
folded innermost first, which matters because every step is an affine map.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from scene.model import SceneElement


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


@dataclass(frozen=True)
class TintData:
    visible: bool = True
    alpha_percent: float = 100.0
    alpha_amount: float = 0.0
    red_percent: float = 100.0
    red_amount: float = 0.0
    green_percent: float = 100.0
    green_amount: float = 0.0
    blue_percent: float = 100.0
    blue_amount: float = 0.0

    @classmethod
    def from_element(cls, element: SceneElement) -> "TintData":
        c = element.color
        return cls(
            visible=element.visible,
            alpha_percent=c.alpha_percent,
            alpha_amount=c.alpha_amount,
            red_percent=c.red_percent,
            red_amount=c.red_amount,
            green_percent=c.green_percent,
            green_amount=c.green_amount,
            blue_percent=c.blue_percent,
            blue_amount=c.blue_amount,
        )


@dataclass(frozen=True)
class Color:
    red: float = 1.0
    green: float = 1.0
    blue: float = 1.0
    alpha: float = 1.0

    def to_hex(self) -> str:
        """Spine ``rrggbbaa`` string."""
        return "".join(
            f"{round(channel * 255):02x}"
            for channel in (self.red, self.green, self.blue, self.alpha)
        )


class TintChain:
    """
    Persistent linked list of tint nodes, innermost node at the head.

    ``blend`` never mutates an existing chain, so sibling contexts can share
    their parent's chain safely.
    """

    def __init__(self, data: Optional[TintData] = None, parent: Optional["TintChain"] = None):
        self.data = data
        self.parent = parent

    def blend(self, element: SceneElement) -> "TintChain":
        return TintChain(TintData.from_element(element), self)

    def nodes(self) -> List[TintData]:
        """Tint nodes from innermost to outermost."""
        result = []
        chain: Optional[TintChain] = self
        while chain is not None:
            if chain.data is not None:
                result.append(chain.data)
            chain = chain.parent
        return result

    def merge(self) -> Color:
        red = green = blue = alpha = 1.0
        visible = True

        for node in self.nodes():
            visible = visible and node.visible
            alpha = _clamp(alpha * node.alpha_percent / 100 + node.alpha_amount / 255)
            red = _clamp(red * node.red_percent / 100 + node.red_amount / 255)
            green = _clamp(green * node.green_percent / 100 + node.green_amount / 255)
            blue = _clamp(blue * node.blue_percent / 100 + node.blue_amount / 255)
            if not visible:
                alpha = 0.0

        return Color(red, green, blue, alpha)
