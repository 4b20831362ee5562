"""Shared test fixtures for mdspec."""

from __future__ import annotations

import ast
import math
import operator
from collections.abc import Mapping
from pathlib import Path
from typing import Callable

import pytest

from mdspec.errors import HandlerFailure

_BINARY = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Pow: operator.pow,
}
_UNARY = {ast.USub: operator.neg, ast.UAdd: operator.pos}
_CONSTANTS = {"pi": math.pi, "e": math.e}


def evaluate(expression: str, context: Mapping[str, str]) -> float:
    """Evaluate an arithmetic expression, resolving names through ``context``."""

    def visit(node: ast.AST) -> float:
        if isinstance(node, ast.Expression):
            return visit(node.body)
        if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)):
            return float(node.value)
        if isinstance(node, ast.BinOp) and type(node.op) in _BINARY:
            left, right = visit(node.left), visit(node.right)
            if isinstance(node.op, ast.Div) and right == 0:
                raise HandlerFailure("error: division by zero")
            return _BINARY[type(node.op)](left, right)
        if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY:
            return _UNARY[type(node.op)](visit(node.operand))
        if isinstance(node, ast.Name):
            if node.id in _CONSTANTS and node.id not in context:
                return _CONSTANTS[node.id]
            return evaluate(context[node.id], context)
        raise HandlerFailure(f"error: unsupported syntax {type(node).__name__}")

    try:
        tree = ast.parse(expression.strip(), mode="eval")
    except SyntaxError:
        raise HandlerFailure(f"error: cannot parse {expression.strip()!r}") from None
    return visit(tree)


def format_number(value: float) -> str:
    if value.is_integer():
        return str(int(value))
    return repr(value)


def calculate(inputs: Mapping[str, str], context: Mapping[str, str]) -> dict[str, str]:
    """Handler: evaluate the ``expression`` input into the ``result`` output."""
    return {"result": format_number(evaluate(inputs["expression"], context))}


async def calculate_async(
    inputs: Mapping[str, str], context: Mapping[str, str]
) -> dict[str, str]:
    return calculate(inputs, context)


@pytest.fixture
def calculator() -> Callable[[Mapping[str, str], Mapping[str, str]], dict[str, str]]:
    """Return the synchronous calculator handler."""
    return calculate


@pytest.fixture
def async_calculator() -> Callable:
    """Return the coroutine calculator handler."""
    return calculate_async


@pytest.fixture
def calculator_doc() -> str:
    """Return a spec document with a background and two examples."""
    return """\
# Calculator

Evaluates arithmetic expressions.

## Background: variables

Given `x` as:

```
5
```

And `y` as:

```
7
```

### Example: sum

When `expression` is:

```
3 + x + y
```

Then `result` is:

```
15
```

### Example: ratio

When `expression` is:

```
(y * 2) / x
```

Then `result` is:

```
2.8
```
"""


@pytest.fixture
def stale_doc() -> str:
    """Return a document whose expected outputs are out of date."""
    return """\
# Stale

Some *emphasis* and a [link](https://example.com) that must survive.

## Example: double

When `expression` is:

```text
2 * 5
```

Then `result` is:

```text
0
```

## Example: circle (ignored)

When `expression` is:

```
2 * pi
```

Then `result` is:

```
TODO
```

<!--
## Example: hidden

When `expression` is:

```
1
```
-->

## Example: half

When `expression` is:

```
1 / 2
```

Then `result` is:

```
nothing yet
```
"""


@pytest.fixture
def write_doc(tmp_path: Path) -> Callable[[str, str], Path]:
    """Return a helper that writes a document into tmp_path."""

    def _write(content: str, name: str = "spec.md") -> Path:
        path = tmp_path / name
        path.write_text(content, encoding="utf-8")
        return path

    return _write
