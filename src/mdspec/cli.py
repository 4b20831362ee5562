"""Click CLI entry point for mdspec."""

from __future__ import annotations

import asyncio
import importlib
import inspect
import logging
import sys
from pathlib import Path
from typing import Any

import click

from mdspec import __version__
from mdspec.config import RunConfig, load_config
from mdspec.discovery import discover
from mdspec.errors import MalformedDocument, MdSpecError, SpecFailure
from mdspec.models import DocumentReport
from mdspec.parser import parse_spec_file
from mdspec.runner import async_run
from mdspec.runner import run as run_document


@click.group()
@click.version_option(version=__version__, prog_name="mdspec")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Log run progress")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """mdspec: executable Markdown specifications."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    if verbose:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")


@cli.command()
@click.argument("patterns", nargs=-1, required=True)
@click.pass_context
def check(ctx: click.Context, patterns: tuple[str, ...]) -> None:
    """Parse spec documents and report malformed ones."""
    paths = _expand(patterns)
    if not paths:
        click.echo(f"Error: no documents match {', '.join(patterns)}")
        ctx.exit(1)
        return

    bad = 0
    for path in paths:
        try:
            document = parse_spec_file(path)
        except MalformedDocument as e:
            click.echo(f"FAIL {e}")
            bad += 1
            continue
        click.echo(f"ok   {path} ({len(document.examples())} examples)")

    click.echo(f"\n{len(paths)} document(s) checked, {bad} malformed.")
    if bad:
        ctx.exit(1)


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--format", "fmt", type=click.Choice(["text", "json", "yaml"]), default="text"
)
@click.pass_context
def show(ctx: click.Context, path: str, fmt: str) -> None:
    """Display the parsed structure of a spec document."""
    from mdspec.exporters.json_export import export_json
    from mdspec.exporters.outline import export_outline
    from mdspec.exporters.yaml_export import export_yaml

    try:
        document = parse_spec_file(Path(path))
    except MalformedDocument as e:
        click.echo(f"Error: {e}")
        ctx.exit(1)
        return

    if fmt == "json":
        click.echo(export_json(document))
    elif fmt == "yaml":
        click.echo(export_yaml(document), nl=False)
    else:
        click.echo(export_outline(document))


@cli.command()
@click.argument("paths", nargs=-1, required=True)
@click.option("--handler", "handler_ref", required=True, help="Handler as module:attr")
@click.option(
    "--rewrite/--no-rewrite",
    "rewrite_specs",
    default=None,
    help="Rewrite expected outputs (default: REWRITE_SPECS)",
)
@click.option("--example", "titles", multiple=True, help="Only run examples with this title")
@click.pass_context
def run(
    ctx: click.Context,
    paths: tuple[str, ...],
    handler_ref: str,
    rewrite_specs: bool | None,
    titles: tuple[str, ...],
) -> None:
    """Run spec documents against a handler."""
    try:
        handler = load_handler(handler_ref)
        config = load_config()
    except (MdSpecError, ImportError, AttributeError) as e:
        click.echo(f"Error: {e}")
        ctx.exit(1)
        return

    documents = _expand(paths)
    if not documents:
        click.echo(f"Error: no documents match {', '.join(paths)}")
        ctx.exit(1)
        return

    failed = 0
    for path in documents:
        try:
            report = _run_one(path, handler, rewrite_specs, titles, config)
        except SpecFailure as e:
            click.echo(f"FAIL {e}")
            failed += 1
            continue
        except (MdSpecError, ValueError, TypeError, OSError) as e:
            click.echo(f"Error: {e}")
            failed += 1
            continue
        suffix = " (rewritten)" if report.rewritten else ""
        click.echo(f"ok   {report.summary()}{suffix}")

    if failed:
        click.echo(f"\n{failed} of {len(documents)} document(s) failed.")
        ctx.exit(1)


def load_handler(ref: str) -> Any:
    """Import ``module:attr`` (or ``module.attr``) and return the callable."""
    if ":" in ref:
        module_name, _, attr = ref.partition(":")
    else:
        module_name, _, attr = ref.rpartition(".")
    if not module_name or not attr:
        raise MdSpecError(f"handler must look like 'module:attr', got {ref!r}")

    cwd = str(Path.cwd())
    if cwd not in sys.path:
        sys.path.insert(0, cwd)
    module = importlib.import_module(module_name)
    handler = getattr(module, attr)
    if not callable(handler):
        raise MdSpecError(f"{ref} is not callable")
    return handler


def _run_one(
    path: Path,
    handler: Any,
    rewrite_specs: bool | None,
    titles: tuple[str, ...],
    config: RunConfig,
) -> DocumentReport:
    options = {"rewrite_specs": rewrite_specs, "examples": titles or None, "config": config}
    if inspect.iscoroutinefunction(handler):
        return asyncio.run(async_run(path, handler, **options))
    return run_document(path, handler, **options)


def _expand(patterns: tuple[str, ...]) -> list[Path]:
    found: list[Path] = []
    for pattern in patterns:
        for path in discover(pattern):
            if path not in found:
                found.append(path)
    return found
