"""Frame label ranges, one output animation each."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from scene.model import SceneTimeline

logger = logging.getLogger(__name__)

DEFAULT_LABEL = "default"


@dataclass
class FrameLabel:
    name: str
    start_frame: int
    end_frame: int


def derive_labels(timeline: Optional[SceneTimeline]) -> List[FrameLabel]:
    """
    Split a timeline into consecutive label ranges.

    Named frame labels are collected layer by layer (top layer first) and
    sorted by start frame; when two labels start on the same frame the one
    seen first wins. Each range runs until the frame before the next label,
    the last one until the end of the timeline. Frames before the first
    label form a ``default`` range.

    Args:
        timeline: Timeline to split

    Returns:
        Ordered, gap-free list of FrameLabel covering ``[0, frame_count - 1]``
    """
    frame_count = max(1, timeline.frame_count) if timeline is not None else 1

    found = []
    if timeline is not None:
        for layer in timeline.layers:
            for frame in layer.frames:
                if frame.label_type == "name" and frame.name:
                    found.append((frame.start_frame, frame.name))

    found.sort(key=lambda entry: entry[0])
    starts: List[tuple] = []
    for start, name in found:
        if starts and starts[-1][0] == start:
            logger.warning("Label '%s' ignored, '%s' already starts at frame %d", name, starts[-1][1], start)
            continue
        starts.append((start, name))

    if not starts:
        return [FrameLabel(DEFAULT_LABEL, 0, frame_count - 1)]

    if starts[0][0] > 0:
        starts.insert(0, (0, DEFAULT_LABEL))

    labels = []
    for index, (start, name) in enumerate(starts):
        end = starts[index + 1][0] - 1 if index + 1 < len(starts) else frame_count - 1
        labels.append(FrameLabel(name, start, end))
    return labels
