"""Document execution: compare or rewrite every example of a spec file."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Collection
from pathlib import Path

from mdspec.config import RunConfig, load_config
from mdspec.errors import SpecFailure
from mdspec.executor import Handler, execute_example, execute_example_async
from mdspec.models import DocumentReport, Example, SpecDocument
from mdspec.parser import parse_spec_file
from mdspec.rewriter import collect_updates, rewrite_outputs

logger = logging.getLogger(__name__)


def process(
    path: Path | str, handler: Handler, *, examples: Collection[str] | None = None
) -> DocumentReport:
    """Execute each example of the document and compare against its expected output."""
    logger.info("processing spec at %s", path)
    document = parse_spec_file(Path(path))
    report = DocumentReport(path=str(path), mode="process")
    for example in select_examples(document, examples):
        report.results.append(execute_example(document, example, handler))
    return report


def rewrite(
    path: Path | str,
    handler: Handler,
    *,
    examples: Collection[str] | None = None,
    lock_timeout: float | None = None,
) -> DocumentReport:
    """Execute each example and replace its expected output with the produced one."""
    logger.info("rewriting spec at %s", path)
    document = parse_spec_file(Path(path))
    report = DocumentReport(path=str(path), mode="rewrite")
    for example in select_examples(document, examples):
        report.results.append(execute_example(document, example, handler))
    updates = collect_updates(document, report.results)
    report.rewritten = rewrite_outputs(path, updates, lock_timeout=lock_timeout)
    return report


async def async_process(
    path: Path | str, handler: Handler, *, examples: Collection[str] | None = None
) -> DocumentReport:
    """An ``async`` version of process."""
    logger.info("processing spec at %s", path)
    document = parse_spec_file(Path(path))
    report = DocumentReport(path=str(path), mode="process")
    for example in select_examples(document, examples):
        report.results.append(await execute_example_async(document, example, handler))
    return report


async def async_rewrite(
    path: Path | str,
    handler: Handler,
    *,
    examples: Collection[str] | None = None,
    lock_timeout: float | None = None,
) -> DocumentReport:
    """An ``async`` version of rewrite. The locked write runs in a worker thread."""
    logger.info("rewriting spec at %s", path)
    document = parse_spec_file(Path(path))
    report = DocumentReport(path=str(path), mode="rewrite")
    for example in select_examples(document, examples):
        report.results.append(await execute_example_async(document, example, handler))
    updates = collect_updates(document, report.results)
    report.rewritten = await asyncio.to_thread(rewrite_outputs, path, updates, lock_timeout)
    return report


def run(
    path: Path | str,
    handler: Handler,
    *,
    rewrite_specs: bool | None = None,
    examples: Collection[str] | None = None,
    config: RunConfig | None = None,
) -> DocumentReport:
    """Either process or rewrite the document, depending on ``REWRITE_SPECS``.

    Raises SpecFailure if any example fails; MalformedDocument propagates.
    """
    config = config or load_config()
    if _rewrite_mode(rewrite_specs, config):
        report = rewrite(path, handler, examples=examples, lock_timeout=config.lock_timeout)
    else:
        report = process(path, handler, examples=examples)
    return check_report(report)


async def async_run(
    path: Path | str,
    handler: Handler,
    *,
    rewrite_specs: bool | None = None,
    examples: Collection[str] | None = None,
    config: RunConfig | None = None,
) -> DocumentReport:
    """An ``async`` version of run."""
    config = config or load_config()
    if _rewrite_mode(rewrite_specs, config):
        report = await async_rewrite(
            path, handler, examples=examples, lock_timeout=config.lock_timeout
        )
    else:
        report = await async_process(path, handler, examples=examples)
    return check_report(report)


def select_examples(
    document: SpecDocument, titles: Collection[str] | None = None
) -> list[Example]:
    """Examples of ``document`` in order, optionally restricted to ``titles``."""
    found = document.examples()
    if titles is None:
        return found
    wanted = set(titles)
    unknown = wanted - {e.title for e in found}
    if unknown:
        names = ", ".join(sorted(repr(t) for t in unknown))
        raise ValueError(f"{document.path}: no example titled {names}")
    return [e for e in found if e.title in wanted]


def check_report(report: DocumentReport) -> DocumentReport:
    """Raise SpecFailure unless ``report`` is successful."""
    logger.info(report.summary())
    if not report.success:
        raise SpecFailure(f"{report.summary()}\n\n{report.format_failures()}")
    return report


def _rewrite_mode(rewrite_specs: bool | None, config: RunConfig) -> bool:
    return config.rewrite if rewrite_specs is None else rewrite_specs
