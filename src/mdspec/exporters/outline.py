"""Plain-text outline of a parsed spec document."""

from __future__ import annotations

from mdspec.models import Section, SpecDocument


def export_outline(document: SpecDocument) -> str:
    """Render the section tree with its backgrounds and examples."""
    lines = [document.path or "<string>"]
    _render(document.root, 0, lines)
    return "\n".join(lines)


def _render(section: Section, depth: int, lines: list[str]) -> None:
    pad = "  " * depth
    if section.level:
        lines.append(f"{pad}{'#' * section.level} {section.title}")
        pad += "  "
    for binding in section.bindings:
        lines.append(f"{pad}given `{binding.name}` (line {binding.line})")
    for example in section.examples:
        flag = " [ignored]" if example.ignored else ""
        when = ", ".join(f"`{b.name}`" for b in example.inputs)
        then = ", ".join(f"`{b.name}`" for b in example.outputs)
        lines.append(f"{pad}example: {example.title}{flag} (when {when}; then {then})")
    for child in section.children:
        _render(child, depth + 1 if section.level else depth, lines)
