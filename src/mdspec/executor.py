"""Example execution and output comparison."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Mapping
from typing import Any, Callable

from mdspec.context import ResolvedContext, resolve_context, resolve_inputs
from mdspec.errors import ComparisonMismatch, HandlerFailure, MissingOutput
from mdspec.models import Example, ExampleResult, SpecDocument, Status

logger = logging.getLogger(__name__)

# handler(inputs, context) -> {output name: str | Exception} | str
Handler = Callable[[ResolvedContext, ResolvedContext], Any]


def normalize(text: str) -> str:
    """Strip exactly one trailing newline. Nothing else is normalized."""
    if text.endswith("\r\n"):
        return text[:-2]
    if text.endswith("\n"):
        return text[:-1]
    return text


def execute_example(
    document: SpecDocument, example: Example, handler: Handler
) -> ExampleResult:
    """Run a synchronous handler against one example and compare its output."""
    if example.ignored:
        return _skipped(example)

    inputs, context = _prepare(document, example)
    try:
        raw = handler(inputs, context)
    except Exception as exc:
        return _settle(example, inputs, error=exc)

    if inspect.isawaitable(raw):
        if inspect.iscoroutine(raw):
            raw.close()
        raise TypeError(
            f"handler for '{example.title}' returned an awaitable; "
            "use execute_example_async / async_run"
        )
    return _settle(example, inputs, raw)


async def execute_example_async(
    document: SpecDocument, example: Example, handler: Handler
) -> ExampleResult:
    """Like execute_example, awaiting the handler result when it is awaitable."""
    if example.ignored:
        return _skipped(example)

    inputs, context = _prepare(document, example)
    try:
        raw = handler(inputs, context)
        if inspect.isawaitable(raw):
            raw = await raw
    except Exception as exc:
        return _settle(example, inputs, error=exc)
    return _settle(example, inputs, raw)


def compare(
    example: Example, actual: Mapping[str, str], inputs: Mapping[str, str]
) -> list[ComparisonMismatch]:
    """Compare every expected output block of ``example`` with ``actual``."""
    mismatches: list[ComparisonMismatch] = []
    for block in example.outputs:
        produced = actual[block.name]
        if normalize(block.value) != normalize(produced):
            mismatches.append(ComparisonMismatch(
                example=example.title,
                name=block.name,
                expected=block.value,
                actual=produced,
                inputs=dict(inputs),
            ))
    return mismatches


def _prepare(
    document: SpecDocument, example: Example
) -> tuple[ResolvedContext, ResolvedContext]:
    return resolve_inputs(example), resolve_context(document, example)


def _skipped(example: Example) -> ExampleResult:
    logger.debug("skipping ignored example '%s'", example.title)
    return ExampleResult(example=example, status=Status.SKIPPED)


def _settle(
    example: Example,
    inputs: ResolvedContext,
    raw: Any = None,
    error: Exception | None = None,
) -> ExampleResult:
    """Turn a handler outcome into an ExampleResult."""
    snapshot = inputs.to_dict()

    if isinstance(error, HandlerFailure):
        actual = {name: error.text for name in example.output_names}
    elif error is not None:
        logger.debug("handler raised for '%s': %r", example.title, error)
        return ExampleResult(example=example, status=Status.ERROR, error=error, inputs=snapshot)
    else:
        try:
            actual = _collect(example, raw)
        except (MissingOutput, TypeError) as exc:
            return ExampleResult(example=example, status=Status.ERROR, error=exc, inputs=snapshot)

    mismatches = compare(example, actual, snapshot)
    return ExampleResult(
        example=example,
        status=Status.FAILED if mismatches else Status.PASSED,
        actual=actual,
        mismatches=mismatches,
        inputs=snapshot,
    )


def _collect(example: Example, raw: Any) -> dict[str, str]:
    """Extract the text of every declared output from a handler result."""
    names = example.output_names
    if isinstance(raw, str):
        raw = {names[0]: raw}
    if not isinstance(raw, Mapping):
        raise TypeError(
            f"handler for '{example.title}' returned {type(raw).__name__}, "
            "expected a mapping of output names or a str"
        )

    actual: dict[str, str] = {}
    for name in names:
        if name not in raw:
            raise MissingOutput(name, example.title)
        actual[name] = _text(raw[name])
    return actual


def _text(value: Any) -> str:
    return value if isinstance(value, str) else str(value)
