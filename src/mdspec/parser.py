"""Markdown spec document parser.

Grammar (informal):
    document   := block*
    block      := HEADING | CODE_BLOCK | COMMENT | PARAGRAPH | BLANK
    background := 'Given `name` as:' CODE_BLOCK ('And `name` as:' CODE_BLOCK)*
    example    := HEADING('Example: title')? when+ then+ (when+ then+)*
    when       := ('When' | 'And') ' `name` is:' CODE_BLOCK
    then       := ('Then' | 'And') ' `name` is:' CODE_BLOCK

Headings other than ``Example:`` open sections; a section at level L closes
every open section at level L or deeper. Example headings attach to the
innermost open section and never close it. Comment regions (``<!-- -->``)
are skipped entirely.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import NoReturn

from mdspec.errors import MalformedDocument
from mdspec.models import (
    BACKGROUND_PREFIX,
    IGNORED_MARKER,
    Binding,
    Example,
    Section,
    SpecDocument,
)

EXAMPLE_PREFIX = "Example:"
UNTITLED_EXAMPLE = "Untitled example"

_HEADING_RE = re.compile(r"^ {0,3}(#{1,6})(?:[ \t]+(.*?))?(?:[ \t]+#+)?[ \t]*$")
_FENCE_OPEN_RE = re.compile(r"^( {0,3})(`{3,}|~{3,})(.*)$")
_FENCE_CLOSE_RE = re.compile(r"^ {0,3}(`{3,}|~{3,})[ \t]*$")
_COMMENT_OPEN = "<!--"
_COMMENT_CLOSE = "-->"

_MARKER_RE = re.compile(r"^(Given|When|Then|And) `([^`]+)` (as|is):$")
_SUFFIXES = {"given": " as:", "when": " is:", "then": " is:"}
_KEYWORD_KINDS = {"Given": "given", "When": "when", "Then": "then"}


class TokenType(Enum):
    HEADING = auto()        # # Title
    CODE_BLOCK = auto()     # ```tag ... ```
    PARAGRAPH = auto()      # prose, possibly a marker
    COMMENT = auto()        # <!-- ... -->
    BLANK = auto()          # empty line
    EOF = auto()


@dataclass
class Token:
    type: TokenType
    text: str
    line_number: int
    offset: int
    level: int = 0
    tag: str = ""
    span: tuple[int, int] = (0, 0)
    fence: str = ""
    indent: int = 0


@dataclass
class _Line:
    text: str       # without the line terminator
    start: int
    end: int        # past the line terminator


def _split_lines(content: str) -> list[_Line]:
    lines: list[_Line] = []
    pos = 0
    while pos < len(content):
        nl = content.find("\n", pos)
        end = len(content) if nl == -1 else nl + 1
        text = content[pos:end]
        if text.endswith("\n"):
            text = text[:-1]
        if text.endswith("\r"):
            text = text[:-1]
        lines.append(_Line(text, pos, end))
        pos = end
    return lines


def closes_fence(line: str, fence: str) -> bool:
    """Whether ``line`` closes a block opened with ``fence``."""
    match = _FENCE_CLOSE_RE.match(line)
    if match is None:
        return False
    closing = match.group(1)
    return closing[0] == fence[0] and len(closing) >= len(fence)


def position(content: str, offset: int) -> tuple[int, int]:
    """Return the 1-based (line, column) of a character offset."""
    line = content.count("\n", 0, offset) + 1
    column = offset - (content.rfind("\n", 0, offset) + 1) + 1
    return line, column


class Lexer:
    """Splits raw Markdown into block-level tokens, keeping source offsets."""

    def __init__(self, content: str, source_file: str | None = None) -> None:
        self.content = content
        self.lines = _split_lines(content)
        self.source_file = source_file

    def tokenize(self) -> list[Token]:
        tokens: list[Token] = []
        i = 0
        while i < len(self.lines):
            line = self.lines[i]
            line_num = i + 1

            if not line.text.strip():
                tokens.append(Token(TokenType.BLANK, "", line_num, line.start))
                i += 1
                continue

            if self._is_comment_start(line.text):
                end_i = self._comment_end(i)
                tokens.append(Token(TokenType.COMMENT, "", line_num, line.start))
                i = end_i + 1
                continue

            heading = _HEADING_RE.match(line.text)
            if heading:
                tokens.append(Token(
                    TokenType.HEADING,
                    (heading.group(2) or "").strip(),
                    line_num,
                    line.start,
                    level=len(heading.group(1)),
                ))
                i += 1
                continue

            fence = self._fence_open(line.text)
            if fence is not None:
                token, end_i = self._read_code_block(i, *fence)
                tokens.append(token)
                i = end_i + 1
                continue

            text, end_i = self._read_paragraph(i)
            tokens.append(Token(TokenType.PARAGRAPH, text, line_num, line.start))
            i = end_i + 1

        tokens.append(Token(TokenType.EOF, "", len(self.lines) + 1, len(self.content)))
        return tokens

    def _is_comment_start(self, text: str) -> bool:
        stripped = text.lstrip(" ")
        return len(text) - len(stripped) <= 3 and stripped.startswith(_COMMENT_OPEN)

    def _comment_end(self, start: int) -> int:
        """Index of the line closing the comment opened at ``start``."""
        first = self.lines[start].text
        if _COMMENT_CLOSE in first[first.index(_COMMENT_OPEN) + len(_COMMENT_OPEN):]:
            return start
        for i in range(start + 1, len(self.lines)):
            if _COMMENT_CLOSE in self.lines[i].text:
                return i
        return len(self.lines) - 1

    def _fence_open(self, text: str) -> tuple[int, str, str] | None:
        match = _FENCE_OPEN_RE.match(text)
        if not match:
            return None
        indent, fence, info = match.groups()
        if fence[0] == "`" and "`" in info:
            return None
        return len(indent), fence, info.strip()

    def _read_code_block(
        self, start: int, indent: int, fence: str, info: str
    ) -> tuple[Token, int]:
        """Read a fenced block. Returns (token, index of the closing fence line)."""
        opening = self.lines[start]
        i = start + 1
        while i < len(self.lines):
            if closes_fence(self.lines[i].text, fence):
                break
            i += 1
        else:
            line, column = position(self.content, opening.start)
            raise MalformedDocument(
                f"unterminated code block (missing closing `{fence}`)",
                self.source_file,
                line,
                column,
            )

        body = self.lines[start + 1:i]
        value = "".join(
            _dedent(self.content[ln.start:ln.end], indent) for ln in body
        ).replace("\r\n", "\n")
        span_start = body[0].start if body else self.lines[i].start
        token = Token(
            TokenType.CODE_BLOCK,
            value,
            start + 1,
            opening.start,
            tag=info.split()[0] if info else "",
            span=(span_start, self.lines[i].start),
            fence=fence,
            indent=indent,
        )
        return token, i

    def _read_paragraph(self, start: int) -> tuple[str, int]:
        """Read consecutive prose lines. Returns (text, last_line_index)."""
        parts: list[str] = []
        i = start
        while i < len(self.lines):
            text = self.lines[i].text
            if i > start and (
                not text.strip()
                or _HEADING_RE.match(text)
                or self._fence_open(text) is not None
                or self._is_comment_start(text)
            ):
                break
            parts.append(text.strip())
            i += 1
        return " ".join(parts), i - 1


def _dedent(text: str, indent: int) -> str:
    removed = 0
    while removed < indent and text[removed:removed + 1] == " ":
        removed += 1
    return text[removed:]


@dataclass
class _ExampleBuilder:
    title: str
    level: int
    ignored: bool
    offset: int
    owner: _SectionBuilder
    inputs: list[Binding] = field(default_factory=list)
    outputs: list[Binding] = field(default_factory=list)

    def freeze(self, content: str) -> Example:
        return Example(
            title=self.title,
            level=self.level,
            inputs=tuple(self.inputs),
            outputs=tuple(self.outputs),
            ignored=self.ignored,
            offset=self.offset,
            line=position(content, self.offset)[0],
        )


@dataclass
class _SectionBuilder:
    title: str
    level: int
    offset: int
    bindings: list[Binding] = field(default_factory=list)
    examples: list[Example] = field(default_factory=list)
    children: list[_SectionBuilder] = field(default_factory=list)

    def freeze(self, content: str) -> Section:
        return Section(
            title=self.title,
            level=self.level,
            bindings=tuple(self.bindings),
            examples=tuple(self.examples),
            children=tuple(c.freeze(content) for c in self.children),
            offset=self.offset,
            line=position(content, self.offset)[0] if self.level else 0,
        )


def _split_title(title: str) -> tuple[str, bool]:
    """Strip the ignored marker from a title. Returns (title, ignored)."""
    if title.endswith(IGNORED_MARKER):
        return title[: -len(IGNORED_MARKER)].rstrip(), True
    return title, False


class Parser:
    """Builds a SpecDocument from a token stream using a stack of open sections."""

    def __init__(
        self, tokens: list[Token], content: str, source_file: str | None = None
    ) -> None:
        self.tokens = tokens
        self.content = content
        self.source_file = source_file
        self.pos = 0
        self.root = _SectionBuilder(title="", level=0, offset=0)
        self.stack: list[_SectionBuilder] = [self.root]
        self.example: _ExampleBuilder | None = None
        self.last_kind: str | None = None

    def parse(self) -> SpecDocument:
        """Parse the token stream into a document tree."""
        while not self._at_end():
            token = self._advance()
            if token.type == TokenType.HEADING:
                self._parse_heading(token)
            elif token.type == TokenType.PARAGRAPH:
                marker = self._match_marker(token)
                if marker is not None:
                    self._parse_marker(token, *marker)

        self._finish_example()
        for builder in self._walk(self.root):
            is_background = builder.level and builder.title.startswith(BACKGROUND_PREFIX)
            if is_background and not builder.bindings:
                self._error(
                    "background section needs at least one 'Given' paragraph",
                    builder.offset,
                )
        return SpecDocument(
            path=self.source_file,
            text=self.content,
            root=self.root.freeze(self.content),
        )

    def _parse_heading(self, token: Token) -> None:
        self._finish_example()
        self.last_kind = None

        if token.text.startswith(EXAMPLE_PREFIX):
            title, ignored = _split_title(token.text[len(EXAMPLE_PREFIX):].strip())
            self.example = _ExampleBuilder(
                title=title,
                level=token.level,
                ignored=ignored,
                offset=token.offset,
                owner=self.stack[-1],
            )
            return

        while self.stack[-1].level >= token.level:
            self.stack.pop()
        section = _SectionBuilder(title=token.text, level=token.level, offset=token.offset)
        self.stack[-1].children.append(section)
        self.stack.append(section)

    def _match_marker(self, token: Token) -> tuple[str, str] | None:
        """Classify a paragraph. Returns (kind, name) for marker paragraphs."""
        text = token.text
        keyword = text.split(" ", 1)[0]
        if keyword == "And":
            kind = self.last_kind
        else:
            kind = _KEYWORD_KINDS.get(keyword)
        if kind is None:
            return None

        suffix = _SUFFIXES[kind]
        if not text.endswith(suffix):
            return None

        match = _MARKER_RE.match(text)
        if match is None:
            if not self._in_spec_region():
                return None
            self._error(
                f"expected '{keyword} `<key>`{suffix}' spec paragraph", token.offset
            )
        return kind, match.group(2)

    def _in_spec_region(self) -> bool:
        """Whether a badly shaped marker here is an error rather than prose."""
        top = self.stack[-1]
        return self.example is not None or (
            top.level > 0 and top.title.startswith(BACKGROUND_PREFIX)
        )

    def _parse_marker(self, marker: Token, kind: str, name: str) -> None:
        block = self._expect_code_block(marker)
        binding = Binding(
            name=name,
            value=block.text,
            tag=block.tag,
            span=block.span,
            fence=block.fence,
            indent=block.indent,
            offset=marker.offset,
            line=marker.line_number,
        )
        self.last_kind = kind

        if kind == "given":
            self._finish_example()
            self.stack[-1].bindings.append(binding)
            return

        if kind == "when":
            if self.example is None:
                top = self.stack[-1]
                title, ignored = _split_title(top.title or UNTITLED_EXAMPLE)
                self.example = _ExampleBuilder(
                    title=title,
                    level=top.level,
                    ignored=ignored,
                    offset=marker.offset,
                    owner=top,
                )
            self.example.inputs.append(binding)
            return

        if self.example is None:
            self._error("'Then' paragraph outside of an example", marker.offset)
        self.example.outputs.append(binding)

    def _expect_code_block(self, marker: Token) -> Token:
        while self._peek().type == TokenType.BLANK:
            self._advance()
        if self._peek().type != TokenType.CODE_BLOCK:
            self._error(
                "expected code block after spec paragraph", marker.offset
            )
        return self._advance()

    def _finish_example(self) -> None:
        example = self.example
        if example is None:
            return
        self.example = None
        if not example.inputs:
            self._error("example section needs at least one 'When' paragraph", example.offset)
        if not example.outputs:
            self._error("example section needs at least one 'Then' paragraph", example.offset)
        example.owner.examples.append(example.freeze(self.content))

    def _walk(self, builder: _SectionBuilder) -> list[_SectionBuilder]:
        found = [builder]
        for child in builder.children:
            found.extend(self._walk(child))
        return found

    def _error(self, message: str, offset: int) -> NoReturn:
        line, column = position(self.content, offset)
        raise MalformedDocument(message, self.source_file, line, column)

    def _peek(self) -> Token:
        if self.pos < len(self.tokens):
            return self.tokens[self.pos]
        return Token(TokenType.EOF, "", -1, len(self.content))

    def _advance(self) -> Token:
        token = self._peek()
        self.pos += 1
        return token

    def _at_end(self) -> bool:
        return self._peek().type == TokenType.EOF


def parse_spec_string(content: str, source_file: str | None = None) -> SpecDocument:
    """Parse a Markdown spec string into a SpecDocument."""
    lexer = Lexer(content, source_file)
    tokens = lexer.tokenize()
    parser = Parser(tokens, content, source_file)
    return parser.parse()


def parse_spec_file(path: Path) -> SpecDocument:
    """Parse a Markdown spec file into a SpecDocument."""
    content = read_spec_text(path)
    return parse_spec_string(content, source_file=str(path))


def read_spec_text(path: Path) -> str:
    """Read a spec file without newline translation, so offsets match the bytes on disk."""
    with open(path, encoding="utf-8", newline="") as f:
        return f.read()
