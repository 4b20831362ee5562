"""Turn a glob of spec documents into one pytest case per document.

Example::

    from mdspec import glob_test, run

    @glob_test("testdata/calculator/**/*.md")
    def test_calculator(path):
        run(path, calculator_handler)

Coroutine test functions are marked ``pytest.mark.asyncio`` and should call
``async_run``. They need pytest-asyncio, installed with the ``async`` extra.
"""

from __future__ import annotations

import glob
import inspect
import logging
import os
import re
from pathlib import Path
from typing import Any, Callable, TypeVar

import pytest

from mdspec.errors import DiscoveryError

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

_MAGIC = re.compile(r"[*?[]")


def discover(pattern: str, root: Path | str | None = None) -> list[Path]:
    """Return the files matching ``pattern`` (``**`` recurses), sorted.

    Relative patterns are resolved against ``root`` (default: the current
    directory); glob characters in ``root`` itself match literally.
    """
    if Path(pattern).is_absolute():
        resolved = pattern
    else:
        resolved = os.path.join(glob.escape(str(_base(root))), pattern)
    return sorted(Path(p) for p in glob.glob(resolved, recursive=True) if Path(p).is_file())


def case_id(path: Path, pattern: str, root: Path | str | None = None) -> str:
    """Derive a test id from the part of ``path`` below the glob's constant prefix."""
    parts = Path(pattern).parts
    constant: list[str] = []
    for part in parts[:-1]:
        if _MAGIC.search(part):
            break
        constant.append(part)
    anchor = os.path.normpath(os.path.join(_base(root), *constant))
    relative = os.path.relpath(os.path.normpath(path), anchor)
    suffix = str(Path(relative).with_suffix(""))
    return re.sub(r"[^A-Za-z0-9]", "_", suffix).strip("_") or path.stem


def _base(root: Path | str | None) -> Path:
    return Path(root) if root is not None else Path.cwd()


def glob_test(pattern: str, root: Path | str | None = None) -> Callable[[F], F]:
    """Parametrize a test taking a ``path`` argument with every matching document.

    ``root`` defaults to the directory of the module defining the test. A
    pattern that matches nothing is an error, raised at collection time.
    """

    def decorator(func: F) -> F:
        base = Path(root) if root is not None else Path(inspect.getfile(func)).resolve().parent
        paths = discover(pattern, base)
        if not paths:
            raise DiscoveryError(
                f"glob_test: pattern {pattern!r} under {base} didn't match any paths"
            )
        logger.debug("%s: %d document(s) for %s", func.__name__, len(paths), pattern)

        ids = [case_id(p, pattern, base) for p in paths]
        wrapped = pytest.mark.parametrize("path", [str(p) for p in paths], ids=ids)(func)
        if inspect.iscoroutinefunction(func):
            wrapped = pytest.mark.asyncio(wrapped)
        return wrapped

    return decorator
