"""Typed filter-graph steps and their serialization to ffmpeg syntax.

A graph is an ordered list of FilterSteps. Each step consumes labeled
pads, runs a chain of Filters, and declares new labeled pads:

    [0:v]split=2[vpre_src][vpost_src]
    [vpre_src]trim=end=10.000,setpts=PTS-STARTPTS,tpad=...[vpre]

Structure and text are kept apart. Builders work with Filter objects
whose option values are already escaped for ffmpeg's *option* level
(`\\`, `:` and `'`); render() then applies the *graph* level escaping
once, so no builder ever has to think about `[ ] , ;` inside a value.

FilterGraph checks labels while steps are added: an input must be a raw
input stream (`0:v`, `1:a`) or a label declared by an earlier step, and
every declared label can be consumed only once.
"""

import re
from dataclasses import dataclass

_RAW_STREAM = re.compile(r"^(\d+):([va])$")
_GRAPH_SPECIAL = re.compile(r"([\\'\[\],;])")


def escape_option_value(value: str) -> str:
    """Escape a literal (a path, say) for the filter option parser."""
    return value.replace("\\", "\\\\").replace(":", "\\:").replace("'", "\\'")


def escape_graph_value(value: str) -> str:
    """Escape characters the filtergraph parser would otherwise interpret."""
    return _GRAPH_SPECIAL.sub(r"\\\1", value)


def _render_value(value) -> str:
    if isinstance(value, float):
        return f"{value:.3f}"
    return escape_graph_value(str(value))


@dataclass(frozen=True)
class Filter:
    """One filter invocation: name plus ordered (key, value) options.

    A key of None renders a positional value (``split=2``).
    """

    name: str
    args: tuple[tuple[str | None, object], ...] = ()

    @classmethod
    def of(cls, name: str, *positional, **options) -> "Filter":
        args = tuple((None, v) for v in positional)
        args += tuple((k, v) for k, v in options.items() if v is not None)
        return cls(name, args)

    def option(self, key: str):
        for k, v in self.args:
            if k == key:
                return v
        return None

    def render(self) -> str:
        if not self.args:
            return self.name
        parts = []
        for key, value in self.args:
            rendered = _render_value(value)
            parts.append(rendered if key is None else f"{key}={rendered}")
        return f"{self.name}={':'.join(parts)}"


@dataclass(frozen=True)
class FilterStep:
    inputs: tuple[str, ...]
    filters: tuple[Filter, ...]
    outputs: tuple[str, ...]

    @property
    def filter_names(self) -> list[str]:
        return [f.name for f in self.filters]

    def find(self, name: str) -> Filter | None:
        for f in self.filters:
            if f.name == name:
                return f
        return None

    def render(self) -> str:
        ins = "".join(f"[{label}]" for label in self.inputs)
        outs = "".join(f"[{label}]" for label in self.outputs)
        chain = ",".join(f.render() for f in self.filters)
        return f"{ins}{chain}{outs}"


class FilterGraph:
    """Ordered, label-checked list of filter steps for one ffmpeg run.

    Args:
        input_count: Number of ``-i`` inputs the command will carry.
    """

    def __init__(self, input_count: int):
        self.input_count = input_count
        self.steps: list[FilterStep] = []
        self.video_label: str = "0:v"
        self.audio_label: str = "0:a?"
        self._available: set[str] = set()
        self._consumed: set[str] = set()
        self._counter = 0

    def fresh(self, stem: str) -> str:
        """Return a label that no step has declared yet."""
        self._counter += 1
        return f"{stem}{self._counter}"

    def add(
        self,
        inputs: list[str] | str,
        filters: list[Filter] | Filter,
        outputs: list[str] | str,
    ) -> FilterStep:
        inputs = [inputs] if isinstance(inputs, str) else list(inputs)
        filters = [filters] if isinstance(filters, Filter) else list(filters)
        outputs = [outputs] if isinstance(outputs, str) else list(outputs)
        if not filters:
            raise ValueError("A filter step needs at least one filter")

        for label in inputs:
            self._consume(label)
        for label in outputs:
            if label in self._available or label in self._consumed:
                raise ValueError(f"Filter label [{label}] declared twice")
            self._available.add(label)

        step = FilterStep(tuple(inputs), tuple(filters), tuple(outputs))
        self.steps.append(step)
        return step

    def _consume(self, label: str) -> None:
        raw = _RAW_STREAM.match(label)
        if raw:
            if int(raw.group(1)) >= self.input_count:
                raise ValueError(f"Filter input [{label}] refers to a missing input")
            if label in self._consumed:
                raise ValueError(f"Input stream [{label}] consumed twice")
            self._consumed.add(label)
            return
        if label not in self._available:
            raise ValueError(f"Filter label [{label}] used before it was declared")
        self._available.remove(label)
        self._consumed.add(label)

    def find_steps(self, name: str) -> list[FilterStep]:
        """All steps whose chain contains a filter with this name."""
        return [s for s in self.steps if s.find(name) is not None]

    def render(self) -> str:
        return ";".join(step.render() for step in self.steps)

    def map_args(self) -> list[str]:
        """``-map`` directives for the resolved video and audio outputs."""
        args = ["-map", self._map_target(self.video_label)]
        if self.audio_label:
            args += ["-map", self._map_target(self.audio_label)]
        return args

    @staticmethod
    def _map_target(label: str) -> str:
        if _RAW_STREAM.match(label.rstrip("?")):
            return label
        return f"[{label}]"

    def command_args(self) -> list[str]:
        """``-filter_complex`` (when any step exists) plus the map directives."""
        args = []
        if self.steps:
            args += ["-filter_complex", self.render()]
        return args + self.map_args()
