"""Per-example context resolution.

A section heading at level L closes every open section at level L or
deeper, so the bindings visible to an example are exactly those of its
ancestor sections declared before it, merged root to leaf.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping

from mdspec.errors import UnresolvedInput
from mdspec.models import Example, SpecDocument


class ResolvedContext(Mapping[str, str]):
    """Read-only name -> value mapping whose missing keys raise UnresolvedInput."""

    def __init__(
        self,
        values: Mapping[str, str] | None = None,
        example: str = "",
        kind: str = "context",
    ) -> None:
        self._values = dict(values or {})
        self.example = example
        self.kind = kind

    def __getitem__(self, name: str) -> str:
        try:
            return self._values[name]
        except KeyError:
            raise UnresolvedInput(name, self.example, self.kind) from None

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"ResolvedContext({self._values!r}, example={self.example!r})"

    def to_dict(self) -> dict[str, str]:
        return dict(self._values)


def resolve_context(document: SpecDocument, example: Example) -> ResolvedContext:
    """Return the background bindings visible to ``example``."""
    values: dict[str, str] = {}
    for section in document.ancestors(example):
        for binding in section.bindings:
            if binding.offset < example.offset:
                values[binding.name] = binding.value
    return ResolvedContext(values, example=example.title)


def resolve_inputs(example: Example) -> ResolvedContext:
    """Return the ``When`` bindings of ``example``; later duplicates win."""
    return ResolvedContext(example.when, example=example.title, kind="input")
