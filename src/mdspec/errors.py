"""Error taxonomy for the spec document engine."""

from __future__ import annotations

import difflib
from dataclasses import dataclass, field


class MdSpecError(Exception):
    """Base class for all engine errors."""


class MalformedDocument(MdSpecError):
    """Raised when a spec document cannot be parsed."""

    def __init__(
        self,
        message: str,
        source_file: str | None = None,
        line: int = 0,
        column: int = 0,
    ) -> None:
        self.message = message
        self.source_file = source_file
        self.line = line
        self.column = column
        super().__init__(str(self))

    def __str__(self) -> str:
        where = self.source_file or "<string>"
        if self.line:
            where += f", line {self.line}, column {self.column}"
        return f"{self.message} ({where})"


class UnresolvedInput(MdSpecError, KeyError):
    """Raised when an example looks up a name that is not bound."""

    def __init__(self, name: str, example: str = "", kind: str = "context") -> None:
        self.name = name
        self.example = example
        self.kind = kind
        super().__init__(name)

    def __str__(self) -> str:
        msg = f"unresolved {self.kind} name `{self.name}`"
        if self.example:
            msg += f" in example '{self.example}'"
        return msg


class HandlerFailure(MdSpecError):
    """Signalled by a handler; its text becomes the actual output."""

    def __init__(self, text: str) -> None:
        self.text = text
        super().__init__(text)

    def __str__(self) -> str:
        return self.text


class MissingOutput(MdSpecError):
    """Raised when a handler result lacks a declared output name."""

    def __init__(self, name: str, example: str) -> None:
        self.name = name
        self.example = example
        super().__init__(f"handler produced no value for `{name}` in example '{example}'")


class LockAcquisitionFailure(MdSpecError):
    """Raised when the document lock cannot be obtained."""


class WriteFailure(MdSpecError):
    """Raised when a rewritten document cannot be persisted."""


class ConfigError(MdSpecError):
    """Raised for invalid run configuration."""


class DiscoveryError(MdSpecError, ValueError):
    """Raised when a document glob cannot be resolved."""


class SpecFailure(AssertionError):
    """Raised by ``run`` when a document has failing examples."""


@dataclass
class ComparisonMismatch:
    """An expected output that differs from the produced one."""

    example: str
    name: str
    expected: str
    actual: str
    inputs: dict[str, str] = field(default_factory=dict)

    def diff(self) -> str:
        lines = difflib.unified_diff(
            self.expected.splitlines(keepends=True),
            self.actual.splitlines(keepends=True),
            fromfile="expected",
            tofile="actual",
        )
        return "".join(line if line.endswith("\n") else line + "\n" for line in lines)

    def __str__(self) -> str:
        parts = [f"unexpected `{self.name}` in {self.example}"]
        for key, value in self.inputs.items():
            parts.append(f"# Input `{key}`:")
            parts.append(value.rstrip("\n"))
        parts.append("# Expected:")
        parts.append(self.expected.rstrip("\n"))
        parts.append("# Actual:")
        parts.append(self.actual.rstrip("\n"))
        diff = self.diff()
        if diff:
            parts.append("# Diff:")
            parts.append(diff.rstrip("\n"))
        return "\n".join(parts)
