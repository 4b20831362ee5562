"""In-place rewriting of expected-output blocks.

Every rewrite is a full read -> parse -> patch -> write cycle under an
exclusive advisory lock on the document path. The file is re-read under the
lock, so concurrent units that update different examples of one document do
not lose each other's changes. Writes go to a temporary file that replaces
the document atomically.
"""

from __future__ import annotations

import fcntl
import logging
import os
import shutil
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType
from typing import IO

from mdspec.errors import LockAcquisitionFailure, WriteFailure
from mdspec.models import Binding, ExampleResult, SpecDocument, Status
from mdspec.parser import closes_fence, parse_spec_string, read_spec_text

logger = logging.getLogger(__name__)

Patch = tuple[int, int, str]


@dataclass(frozen=True)
class OutputKey:
    """Stable address of an expected-output block within a document."""

    example_index: int   # position among SpecDocument.examples()
    output_index: int    # position among Example.outputs
    title: str
    name: str


class DocumentLock:
    """Exclusive ``flock`` on a document path.

    A concurrent writer may replace the file while we wait, so after the lock
    is granted the path is checked to still name the locked inode; if not, the
    new file is opened and locked instead.
    """

    def __init__(
        self, path: Path | str, timeout: float | None = None, poll_interval: float = 0.05
    ) -> None:
        self.path = Path(path)
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._file: IO[bytes] | None = None

    @property
    def locked(self) -> bool:
        return self._file is not None

    def acquire(self) -> None:
        deadline = None if self.timeout is None else time.monotonic() + self.timeout
        while True:
            try:
                f = open(self.path, "rb")
            except OSError as exc:
                raise LockAcquisitionFailure(f"cannot open {self.path}: {exc}") from exc
            try:
                self._lock(f, deadline)
                if self._still_current(f):
                    self._file = f
                    return
            except BaseException:
                f.close()
                raise
            logger.debug("%s was replaced while waiting for its lock, retrying", self.path)
            f.close()

    def release(self) -> None:
        f, self._file = self._file, None
        if f is None:
            return
        try:
            fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        finally:
            f.close()

    def _lock(self, f: IO[bytes], deadline: float | None) -> None:
        try:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
            return
        except BlockingIOError:
            logger.info("waiting for lock on %s", self.path)
        except OSError as exc:
            raise LockAcquisitionFailure(f"cannot lock {self.path}: {exc}") from exc

        try:
            if deadline is None:
                fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                return
            while True:
                try:
                    fcntl.flock(f.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                    return
                except BlockingIOError:
                    if time.monotonic() >= deadline:
                        raise LockAcquisitionFailure(
                            f"timed out after {self.timeout}s waiting for lock on {self.path}"
                        ) from None
                    time.sleep(self.poll_interval)
        except LockAcquisitionFailure:
            raise
        except OSError as exc:
            raise LockAcquisitionFailure(f"cannot lock {self.path}: {exc}") from exc

    def _still_current(self, f: IO[bytes]) -> bool:
        try:
            on_disk = os.stat(self.path)
        except FileNotFoundError as exc:
            raise LockAcquisitionFailure(f"{self.path} disappeared while locking") from exc
        held = os.fstat(f.fileno())
        return (on_disk.st_dev, on_disk.st_ino) == (held.st_dev, held.st_ino)

    def __enter__(self) -> DocumentLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()


def collect_updates(
    document: SpecDocument, results: list[ExampleResult]
) -> dict[OutputKey, str]:
    """Map every output block of an executed example to its produced text.

    Skipped and errored examples contribute nothing, so their blocks stay as
    they are.
    """
    index = {e.offset: i for i, e in enumerate(document.examples())}
    updates: dict[OutputKey, str] = {}
    for result in results:
        if result.status not in (Status.PASSED, Status.FAILED):
            continue
        example = result.example
        for j, block in enumerate(example.outputs):
            key = OutputKey(index[example.offset], j, example.title, block.name)
            updates[key] = result.actual[block.name]
    return updates


def render_block(text: str, block: Binding, newline: str = "\n") -> str:
    """Render ``text`` as the content of ``block``, keeping its fence intact.

    Lines end with ``newline`` so the block matches the rest of the document.
    """
    text = text.replace("\r\n", "\n")
    if text and not text.endswith("\n"):
        text += "\n"
    lines = [line + newline for line in text.split("\n")[:-1]]
    for line in lines:
        if closes_fence(line.rstrip("\r\n"), block.fence):
            raise WriteFailure(
                f"output for `{block.name}` contains a line that closes its "
                f"{block.fence} fence (line {block.line})"
            )
    if block.indent:
        pad = " " * block.indent
        lines = [pad + line if line.strip() else line for line in lines]
    return "".join(lines)


def compute_patches(document: SpecDocument, updates: dict[OutputKey, str]) -> list[Patch]:
    """Locate each updated block in ``document`` and render its replacement."""
    examples = document.examples()
    newline = "\r\n" if "\r\n" in document.text else "\n"
    patches: list[Patch] = []
    for key, text in updates.items():
        if key.example_index >= len(examples):
            raise WriteFailure(f"{document.path}: example '{key.title}' no longer exists")
        example = examples[key.example_index]
        if example.title != key.title or example.ignored:
            raise WriteFailure(
                f"{document.path}: example #{key.example_index} is now '{example.title}', "
                f"expected '{key.title}'"
            )
        if key.output_index >= len(example.outputs):
            raise WriteFailure(f"{document.path}: output `{key.name}` of '{key.title}' is gone")
        block = example.outputs[key.output_index]
        if block.name != key.name:
            raise WriteFailure(
                f"{document.path}: output #{key.output_index} of '{key.title}' "
                f"is now `{block.name}`, expected `{key.name}`"
            )
        start, end = block.span
        patches.append((start, end, render_block(text, block, newline)))
    return patches


def apply_patches(text: str, patches: list[Patch]) -> str:
    """Apply span replacements from the highest offset down."""
    for start, end, replacement in sorted(patches, key=lambda p: p[0], reverse=True):
        text = text[:start] + replacement + text[end:]
    return text


def rewrite_outputs(
    path: Path | str, updates: dict[OutputKey, str], lock_timeout: float | None = None
) -> bool:
    """Patch expected-output blocks of the document at ``path``.

    Returns True if the file content changed.
    """
    path = Path(path)
    with DocumentLock(path, timeout=lock_timeout):
        original = read_spec_text(path)
        document = parse_spec_string(original, source_file=str(path))
        patched = apply_patches(original, compute_patches(document, updates))
        if patched == original:
            logger.debug("%s is up to date", path)
            return False
        write_atomic(path, patched)
    logger.info("rewrote %d output block(s) in %s", len(updates), path)
    return True


def write_atomic(path: Path, text: str) -> None:
    """Replace ``path`` with ``text`` without ever exposing a partial file."""
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        shutil.copymode(path, tmp)
        os.replace(tmp, path)
    except BaseException as exc:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
        if isinstance(exc, OSError):
            raise WriteFailure(f"cannot write {path}: {exc}") from exc
        raise
