"""Filter graph IR.

A graph is a list of chains; each chain reads labeled pads, applies a
sequence of filters and writes labeled pads. ``render()`` turns it into
ffmpeg ``-filter_complex`` syntax; everything before that works on
structure, not strings.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

# Pads that refer to input streams rather than to other chains (e.g. "0:v", "2:a")
_STREAM_SPECIFIER = re.compile(r"^\d+:[vas](:\d+)?$")


@dataclass(frozen=True)
class Filter:
    name: str
    args: tuple[tuple[str | None, str], ...] = ()
    verbatim: bool = False

    @classmethod
    def of(cls, name: str, *positional: object, **options: object) -> "Filter":
        args: list[tuple[str | None, str]] = [(None, str(v)) for v in positional]
        args.extend((k, str(v)) for k, v in options.items())
        return cls(name=name, args=tuple(args))

    @classmethod
    def raw(cls, expression: str) -> "Filter":
        """A filter (or comma-joined chain) passed through exactly as written."""
        return cls(name=expression.strip().strip(","), verbatim=True)

    def option(self, key: str) -> str | None:
        for k, v in self.args:
            if k == key:
                return v
        return None

    def render(self) -> str:
        if self.verbatim or not self.args:
            return self.name
        parts = [v if k is None else f"{k}={v}" for k, v in self.args]
        return f"{self.name}={':'.join(parts)}"


@dataclass
class FilterChain:
    inputs: list[str]
    filters: list[Filter]
    outputs: list[str]

    def has_filter(self, name: str) -> bool:
        return any(not f.verbatim and f.name == name for f in self.filters)

    def render(self) -> str:
        pads_in = "".join(f"[{label}]" for label in self.inputs)
        pads_out = "".join(f"[{label}]" for label in self.outputs)
        return f"{pads_in}{','.join(f.render() for f in self.filters)}{pads_out}"


@dataclass
class FilterGraph:
    chains: list[FilterChain] = field(default_factory=list)

    def add(self, inputs: list[str], filters: list[Filter], outputs: list[str]) -> FilterChain:
        chain = FilterChain(inputs=list(inputs), filters=list(filters), outputs=list(outputs))
        self.chains.append(chain)
        return chain

    def chains_with(self, filter_name: str) -> list[FilterChain]:
        return [c for c in self.chains if c.has_filter(filter_name)]

    def producer_of(self, label: str) -> FilterChain | None:
        for chain in self.chains:
            if label in chain.outputs:
                return chain
        return None

    def unconnected_outputs(self) -> list[str]:
        """Labels produced but never consumed: the graph's sinks."""
        consumed = {label for c in self.chains for label in c.inputs}
        return [label for c in self.chains for label in c.outputs if label not in consumed]

    def validate(self) -> None:
        """Every pad is produced once, consumed at most once, and produced before use."""
        produced: set[str] = set()
        consumed: set[str] = set()
        for chain in self.chains:
            for label in chain.inputs:
                if _STREAM_SPECIFIER.match(label):
                    continue
                if label not in produced:
                    raise ValueError(f"Pad [{label}] used before it is produced")
                if label in consumed:
                    raise ValueError(f"Pad [{label}] consumed twice")
                consumed.add(label)
            for label in chain.outputs:
                if label in produced:
                    raise ValueError(f"Pad [{label}] produced twice")
                produced.add(label)

    def render(self) -> str:
        return ";".join(chain.render() for chain in self.chains)


def quote_value(value: str) -> str:
    """Single-quote a filter option value for the filtergraph parser."""
    return "'" + value.replace("'", r"'\''") + "'"
