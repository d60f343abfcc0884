"""Tests for frame label ranges"""

from builders import frame, layer
from converter.labels import DEFAULT_LABEL, FrameLabel, derive_labels
from scene.model import SceneTimeline


def _timeline(*label_frames, length=10):
    labels = layer("labels", list(label_frames))
    art = layer("art", [frame(0, duration=length)])
    return SceneTimeline(name="t", layers=[labels, art])


def test_no_labels_gives_single_default_range():
    """An unlabelled timeline becomes one animation over every frame"""
    assert derive_labels(_timeline(length=12)) == [FrameLabel(DEFAULT_LABEL, 0, 11)]


def test_missing_timeline_gives_one_frame():
    """A timeline-less item still gets a default range"""
    assert derive_labels(None) == [FrameLabel(DEFAULT_LABEL, 0, 0)]


def test_ranges_end_before_next_label():
    """Each label runs until the next one starts"""
    timeline = _timeline(
        frame(0, duration=4, label_type="name", name="idle"),
        frame(4, duration=6, label_type="name", name="walk"),
    )

    assert derive_labels(timeline) == [
        FrameLabel("idle", 0, 3),
        FrameLabel("walk", 4, 9),
    ]


def test_frames_before_first_label_get_default():
    """A leading unlabelled stretch is covered by the default range"""
    timeline = _timeline(
        frame(0, duration=3),
        frame(3, duration=7, label_type="name", name="jump"),
    )

    labels = derive_labels(timeline)

    assert [label.name for label in labels] == [DEFAULT_LABEL, "jump"]
    assert (labels[0].start_frame, labels[0].end_frame) == (0, 2)


def test_comments_and_anchors_are_not_labels():
    """Only name labels split the timeline"""
    timeline = _timeline(
        frame(0, duration=5, label_type="comment", name="note"),
        frame(5, duration=5, label_type="anchor", name="pin"),
    )

    assert derive_labels(timeline) == [FrameLabel(DEFAULT_LABEL, 0, 9)]


def test_same_start_keeps_first_seen():
    """Labels sharing a start frame collapse to the one on the top layer"""
    top = layer("top", [frame(0, duration=10, label_type="name", name="first")])
    bottom = layer("bottom", [frame(0, duration=10, label_type="name", name="second")])

    labels = derive_labels(SceneTimeline(layers=[top, bottom]))

    assert labels == [FrameLabel("first", 0, 9)]
