"""Tests for per-clip render command construction.

Structure is checked through the typed steps rather than by string
matching, except where the serialized form itself matters.
"""

import pytest

from highlightexport.filtergraph import (
    ClipTiming,
    build_dual_angle,
    build_single_angle,
)
from highlightexport.overlays import OverlayLine
from highlightexport.request import ClipSpec


def _clip(**overrides):
    c = {"id": "a", "actionName": "Scrum", "startTime": 100.0, "endTime": 120.0}
    c.update(overrides)
    return ClipSpec.model_validate(c)


LINES = [OverlayLine("#1 Scrum", is_bold=True), OverlayLine("Result: Won")]


def _arg_after(args, flag):
    return args[args.index(flag) + 1]


class TestClipTiming:
    def test_basic(self):
        t = ClipTiming.from_clip(_clip())
        assert (t.start, t.duration) == (100.0, 20.0)
        assert not t.has_freeze

    @pytest.mark.parametrize("start, end", [(10.0, 10.2), (10.0, 10.0), (0.0, 0.49)])
    def test_duration_floor(self, start, end):
        t = ClipTiming.from_clip(_clip(startTime=start, endTime=end))
        assert t.duration == 0.5
        assert _arg_after(t.input_args("in.mp4"), "-t") == "0.500"

    def test_negative_start_floored(self):
        t = ClipTiming.from_clip(_clip(startTime=-2.0, endTime=3.0))
        assert t.start == 0.0
        assert _arg_after(t.input_args("in.mp4"), "-ss") == "0.000"

    def test_freeze_at_clamped_into_clip(self):
        assert ClipTiming.from_clip(_clip(freezeAt=-1, freezeDuration=2)).freeze_at == 0.0
        assert ClipTiming.from_clip(_clip(freezeAt=50, freezeDuration=2)).freeze_at == 20.0

    @pytest.mark.parametrize("duration", [None, 0, -1])
    def test_freeze_needs_positive_duration(self, duration):
        t = ClipTiming.from_clip(_clip(freezeAt=5, freezeDuration=duration))
        assert not t.has_freeze
        assert t.freeze_window is None

    def test_freeze_window(self):
        t = ClipTiming.from_clip(_clip(freezeAt=10, freezeDuration=3))
        assert t.freeze_window == (10.0, 13.0)

    def test_input_args(self):
        t = ClipTiming.from_clip(_clip())
        assert t.input_args("in.mp4") == ["-ss", "100.000", "-t", "20.000", "-i", "in.mp4"]


class TestSingleAngle:
    def test_plain_trim_has_no_filter_graph(self):
        cmd = build_single_angle("in.mp4", ClipTiming.from_clip(_clip()), [], overlay_enabled=False)
        args = cmd.args("out.mp4", ["-c:v", "libx264"])
        assert "-filter_complex" not in args
        assert args[:7] == ["-y", "-ss", "100.000", "-t", "20.000", "-i", "in.mp4"]
        assert args[-1] == "out.mp4"
        assert cmd.graph.map_args() == ["-map", "0:v", "-map", "0:a?"]

    def test_freeze_windowing(self):
        """freezeAt=10, freezeDuration=3 on a 20s clip."""
        timing = ClipTiming.from_clip(_clip(freezeAt=10, freezeDuration=3))
        graph = build_single_angle("in.mp4", timing, [], overlay_enabled=False).graph

        trims = [s.find("trim") for s in graph.find_steps("trim")]
        assert [t.option("end") for t in trims if t.option("end") is not None] == [10.0]
        assert [t.option("start") for t in trims if t.option("start") is not None] == [10.0]

        pad_steps = graph.find_steps("tpad")
        assert len(pad_steps) == 1
        assert pad_steps[0].find("tpad").option("stop_duration") == 3.0
        assert pad_steps[0].find("tpad").option("stop_mode") == "clone"
        # The pad belongs to the pre-freeze segment (the one trimmed to end).
        assert pad_steps[0].find("trim").option("end") == 10.0

        joins = [s for s in graph.find_steps("concat") if s.find("concat").option("v") == 1]
        assert len(joins) == 1
        assert len(joins[0].inputs) == 2
        assert graph.video_label == joins[0].outputs[0]

    def test_freeze_mirrors_audio(self):
        timing = ClipTiming.from_clip(_clip(freezeAt=10, freezeDuration=3))
        graph = build_single_angle("in.mp4", timing, [], overlay_enabled=False).graph
        assert graph.find_steps("asplit")[0].inputs == ("0:a",)
        assert graph.find_steps("apad")[0].find("apad").option("pad_dur") == 3.0
        audio_join = [s for s in graph.find_steps("concat") if s.find("concat").option("a") == 1]
        assert graph.audio_label == audio_join[0].outputs[0]
        assert f"[{graph.audio_label}]" in graph.map_args()

    @pytest.mark.parametrize("duration", [0, -2])
    def test_no_freeze_steps_without_positive_duration(self, duration):
        timing = ClipTiming.from_clip(_clip(freezeAt=10, freezeDuration=duration))
        graph = build_single_angle("in.mp4", timing, LINES).graph
        for name in ("split", "trim", "tpad", "concat", "asplit", "apad"):
            assert graph.find_steps(name) == []
        assert graph.audio_label == "0:a?"

    @pytest.mark.parametrize("freeze_at", [0, -4])
    def test_freeze_at_start_holds_first_frame(self, freeze_at):
        """No pre-freeze segment exists, so nothing is split or trimmed."""
        timing = ClipTiming.from_clip(_clip(freezeAt=freeze_at, freezeDuration=3))
        graph = build_single_angle("in.mp4", timing, [], overlay_enabled=False).graph

        for name in ("split", "trim", "concat", "asplit", "atrim", "apad"):
            assert graph.find_steps(name) == []
        pad = graph.find_steps("tpad")[0]
        assert pad.inputs == ("0:v",)
        assert pad.find("tpad").option("start_mode") == "clone"
        assert pad.find("tpad").option("start_duration") == 3.0
        assert pad.find("tpad").option("stop_duration") is None
        assert graph.video_label == pad.outputs[0]

        delay = graph.find_steps("adelay")[0]
        assert delay.inputs == ("0:a",)
        assert delay.find("adelay").render() == "adelay=delays=3000:all=1"
        assert graph.audio_label == delay.outputs[0]

    def test_freeze_at_start_windows_annotation(self):
        timing = ClipTiming.from_clip(_clip(freezeAt=0, freezeDuration=1.5))
        graph = build_single_angle("in.mp4", timing, [], "/tmp/ann.png").graph
        overlay = graph.find_steps("overlay")[0].find("overlay")
        assert overlay.option("enable") == "between(t,0.000,1.500)"

    def test_freeze_without_audio_is_video_only(self):
        timing = ClipTiming.from_clip(_clip(freezeAt=10, freezeDuration=3))
        graph = build_single_angle(
            "in.mp4", timing, [], overlay_enabled=False, has_audio=False,
        ).graph
        assert len(graph.find_steps("tpad")) == 1
        for name in ("asplit", "atrim", "apad", "adelay"):
            assert graph.find_steps(name) == []
        assert graph.audio_label == "0:a?"

    def test_annotation_visible_throughout_without_freeze(self):
        timing = ClipTiming.from_clip(_clip())
        cmd = build_single_angle("in.mp4", timing, [], "/tmp/ann.png", overlay_enabled=False)
        assert cmd.inputs[-2:] == ["-i", "/tmp/ann.png"]
        graph = cmd.graph
        assert graph.find_steps("format")[0].inputs == ("1:v",)
        assert graph.find_steps("format")[0].find("format").render() == "format=rgba"
        overlay = graph.find_steps("overlay")[0].find("overlay")
        assert overlay.option("enable") is None
        assert graph.video_label == graph.find_steps("overlay")[0].outputs[0]

    def test_annotation_windowed_to_freeze(self):
        timing = ClipTiming.from_clip(_clip(freezeAt=10, freezeDuration=3))
        graph = build_single_angle("in.mp4", timing, [], "/tmp/ann.png").graph
        overlay_step = graph.find_steps("overlay")[0]
        assert overlay_step.find("overlay").option("enable") == "between(t,10.000,13.000)"
        # Scaled against the frozen video, not the raw input.
        scale_step = graph.find_steps("scale2ref")[0]
        freeze_out = [s for s in graph.find_steps("concat") if s.find("concat").option("v") == 1]
        assert scale_step.inputs[1] == freeze_out[0].outputs[0]

    def test_caption_applied_last(self):
        timing = ClipTiming.from_clip(_clip(freezeAt=10, freezeDuration=3))
        graph = build_single_angle("in.mp4", timing, LINES, "/tmp/ann.png").graph
        last = graph.steps[-1]
        assert last.filter_names == ["drawbox", "drawtext", "drawtext"]
        assert graph.video_label == last.outputs[0]

    def test_caption_skipped_when_overlay_disabled(self):
        graph = build_single_angle(
            "in.mp4", ClipTiming.from_clip(_clip()), LINES, overlay_enabled=False,
        ).graph
        assert graph.find_steps("drawtext") == []

    def test_serialized_graph_is_well_formed(self):
        timing = ClipTiming.from_clip(_clip(freezeAt=10, freezeDuration=3))
        cmd = build_single_angle("in.mp4", timing, LINES, "/tmp/ann.png")
        args = cmd.args("out.mp4", [])
        graph = _arg_after(args, "-filter_complex")
        assert graph.count(";") == len(cmd.graph.steps) - 1
        assert "between(t\\,10.000\\,13.000)" in graph
        assert _arg_after(args, "-map") == f"[{cmd.graph.video_label}]"


class TestDualAngle:
    def test_two_sources_trimmed_identically(self):
        timing = ClipTiming.from_clip(_clip())
        cmd = build_dual_angle("a.mp4", "b.mp4", timing, [])
        assert cmd.inputs == [
            "-ss", "100.000", "-t", "20.000", "-i", "a.mp4",
            "-ss", "100.000", "-t", "20.000", "-i", "b.mp4",
        ]

    def test_stacks_and_renames_when_overlay_disabled(self):
        cmd = build_dual_angle(
            "a.mp4", "b.mp4", ClipTiming.from_clip(_clip()), LINES, overlay_enabled=False,
        )
        graph = cmd.graph
        stack = graph.find_steps("hstack")[0]
        assert stack.find("hstack").option("inputs") == 2
        last = graph.steps[-1]
        assert last.filter_names == ["null"]
        assert last.inputs == stack.outputs
        assert graph.video_label == last.outputs[0]

    def test_secondary_scaled_to_primary_height(self):
        graph = build_dual_angle("a.mp4", "b.mp4", ClipTiming.from_clip(_clip()), []).graph
        fit = graph.find_steps("scale2ref")[0]
        assert fit.inputs == ("1:v", "0:v")
        assert fit.find("scale2ref").option("h") == "ih"

    def test_caption_on_combined_frame(self):
        graph = build_dual_angle("a.mp4", "b.mp4", ClipTiming.from_clip(_clip()), LINES).graph
        stack = graph.find_steps("hstack")[0]
        caption = graph.find_steps("drawtext")[0]
        assert caption.inputs == stack.outputs
        assert graph.find_steps("null") == []

    def test_freeze_on_both_angles_audio_only_from_primary(self):
        timing = ClipTiming.from_clip(_clip(freezeAt=10, freezeDuration=3))
        graph = build_dual_angle("a.mp4", "b.mp4", timing, []).graph
        assert [s.inputs for s in graph.find_steps("split")] == [("0:v",), ("1:v",)]
        assert len(graph.find_steps("tpad")) == 2
        assert [s.inputs for s in graph.find_steps("asplit")] == [("0:a",)]
        assert graph.audio_label.startswith("afrz")

    def test_independent_annotations(self):
        timing = ClipTiming.from_clip(_clip(freezeAt=10, freezeDuration=3))
        cmd = build_dual_angle("a.mp4", "b.mp4", timing, [], "/tmp/p.png", "/tmp/s.png")
        assert cmd.inputs[-4:] == ["-i", "/tmp/p.png", "-i", "/tmp/s.png"]
        formats = cmd.graph.find_steps("format")
        assert [s.inputs for s in formats] == [("2:v",), ("3:v",)]
        overlays = cmd.graph.find_steps("overlay")
        assert len(overlays) == 2
        assert all(
            s.find("overlay").option("enable") == "between(t,10.000,13.000)" for s in overlays
        )

    def test_secondary_annotation_only(self):
        cmd = build_dual_angle(
            "a.mp4", "b.mp4", ClipTiming.from_clip(_clip()), [], None, "/tmp/s.png",
        )
        assert cmd.inputs[-2:] == ["-i", "/tmp/s.png"]
        assert cmd.graph.find_steps("format")[0].inputs == ("2:v",)
        assert cmd.graph.input_count == 3

    def test_freeze_at_start_on_both_angles(self):
        timing = ClipTiming.from_clip(_clip(freezeAt=0, freezeDuration=2))
        graph = build_dual_angle("a.mp4", "b.mp4", timing, []).graph
        assert [s.inputs for s in graph.find_steps("tpad")] == [("0:v",), ("1:v",)]
        assert graph.find_steps("split") == []
        assert [s.inputs for s in graph.find_steps("adelay")] == [("0:a",)]

    def test_dual_freeze_without_audio(self):
        timing = ClipTiming.from_clip(_clip(freezeAt=5, freezeDuration=2))
        graph = build_dual_angle("a.mp4", "b.mp4", timing, [], has_audio=False).graph
        assert len(graph.find_steps("tpad")) == 2
        assert graph.find_steps("asplit") == []
        assert graph.audio_label == "0:a?"
