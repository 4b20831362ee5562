"""Core data models for mdspec."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator

from mdspec.errors import ComparisonMismatch

IGNORED_MARKER = "(ignored)"
BACKGROUND_PREFIX = "Background"


@dataclass(frozen=True)
class Binding:
    """A named fenced block: a background value, an input or an expected output."""

    name: str
    value: str
    tag: str = ""
    span: tuple[int, int] = (0, 0)  # content offsets in SpecDocument.text
    fence: str = "```"
    indent: int = 0
    offset: int = 0
    line: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "value": self.value,
            "tag": self.tag,
            "line": self.line,
        }


@dataclass(frozen=True)
class Example:
    """One input/expected-output scenario."""

    title: str
    level: int
    inputs: tuple[Binding, ...] = ()
    outputs: tuple[Binding, ...] = ()
    ignored: bool = False
    offset: int = 0
    line: int = 0

    @property
    def when(self) -> dict[str, str]:
        return {b.name: b.value for b in self.inputs}

    @property
    def then(self) -> dict[str, str]:
        return {b.name: b.value for b in self.outputs}

    @property
    def output_names(self) -> list[str]:
        names: list[str] = []
        for b in self.outputs:
            if b.name not in names:
                names.append(b.name)
        return names

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "level": self.level,
            "ignored": self.ignored,
            "line": self.line,
            "when": [b.to_dict() for b in self.inputs],
            "then": [b.to_dict() for b in self.outputs],
        }


@dataclass(frozen=True)
class Section:
    """A heading with its background bindings, examples and nested sections."""

    title: str
    level: int
    bindings: tuple[Binding, ...] = ()
    examples: tuple[Example, ...] = ()
    children: tuple[Section, ...] = ()
    offset: int = 0
    line: int = 0

    @property
    def is_background(self) -> bool:
        return self.title.startswith(BACKGROUND_PREFIX)

    def walk(self) -> Iterator[Section]:
        """Yield this section and all its descendants, depth first."""
        yield self
        for child in self.children:
            yield from child.walk()

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "level": self.level,
            "line": self.line,
            "given": [b.to_dict() for b in self.bindings],
            "examples": [e.to_dict() for e in self.examples],
            "sections": [c.to_dict() for c in self.children],
        }


@dataclass(frozen=True)
class SpecDocument:
    """A parsed spec document.

    ``root`` is a synthetic level-0 section; whatever precedes the first
    heading lives there and the top-level headings are its children.
    """

    path: str | None
    text: str
    root: Section

    @property
    def sections(self) -> tuple[Section, ...]:
        return self.root.children

    def examples(self) -> list[Example]:
        """All examples in document order."""
        found = [e for s in self.root.walk() for e in s.examples]
        return sorted(found, key=lambda e: e.offset)

    def ancestors(self, example: Example) -> list[Section]:
        """Sections from the root down to the one holding ``example``."""
        path = _find_path(self.root, example)
        if path is None:
            raise ValueError(f"Example '{example.title}' does not belong to this document")
        return path

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "given": [b.to_dict() for b in self.root.bindings],
            "examples": [e.to_dict() for e in self.root.examples],
            "sections": [s.to_dict() for s in self.sections],
        }


def _find_path(section: Section, example: Example) -> list[Section] | None:
    if any(e is example for e in section.examples):
        return [section]
    for child in section.children:
        path = _find_path(child, example)
        if path is not None:
            return [section] + path
    return None


class Status(Enum):
    """Outcome of executing a single example."""

    PASSED = "passed"
    FAILED = "failed"
    ERROR = "error"
    SKIPPED = "skipped"


@dataclass
class ExampleResult:
    """Result of executing one example against a handler."""

    example: Example
    status: Status
    actual: dict[str, str] = field(default_factory=dict)
    mismatches: list[ComparisonMismatch] = field(default_factory=list)
    error: BaseException | None = None
    inputs: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status in (Status.PASSED, Status.SKIPPED)

    def describe(self) -> str:
        """Human-readable failure description (empty for passing results)."""
        if self.status is Status.FAILED:
            return "\n\n".join(str(m) for m in self.mismatches)
        if self.status is Status.ERROR:
            return f"error in {self.example.title}: {self.error}"
        return ""


@dataclass
class DocumentReport:
    """Result of running every example of one document."""

    path: str | None
    mode: str = "process"  # "process" or "rewrite"
    results: list[ExampleResult] = field(default_factory=list)
    rewritten: bool = False

    def _count(self, status: Status) -> int:
        return sum(1 for r in self.results if r.status is status)

    @property
    def passed(self) -> int:
        return self._count(Status.PASSED)

    @property
    def failed(self) -> int:
        return self._count(Status.FAILED)

    @property
    def errors(self) -> int:
        return self._count(Status.ERROR)

    @property
    def skipped(self) -> int:
        return self._count(Status.SKIPPED)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def success(self) -> bool:
        # Mismatches are what a rewrite fixes; only errors fail it.
        if self.mode == "rewrite":
            return self.errors == 0
        return self.failed == 0 and self.errors == 0

    @property
    def failures(self) -> list[ExampleResult]:
        if self.mode == "rewrite":
            return [r for r in self.results if r.status is Status.ERROR]
        return [r for r in self.results if not r.ok]

    def summary(self) -> str:
        return (
            f"{self.path or '<string>'}: {self.passed} passed, {self.failed} failed, "
            f"{self.errors} errors, {self.skipped} skipped"
        )

    def format_failures(self) -> str:
        return "\n\n".join(r.describe() for r in self.failures)
