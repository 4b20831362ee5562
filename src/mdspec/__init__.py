"""mdspec: executable Markdown specifications."""

from mdspec.context import ResolvedContext, resolve_context
from mdspec.discovery import discover, glob_test
from mdspec.errors import (
    ComparisonMismatch,
    ConfigError,
    DiscoveryError,
    HandlerFailure,
    LockAcquisitionFailure,
    MalformedDocument,
    MdSpecError,
    MissingOutput,
    SpecFailure,
    UnresolvedInput,
    WriteFailure,
)
from mdspec.models import (
    Binding,
    DocumentReport,
    Example,
    ExampleResult,
    Section,
    SpecDocument,
    Status,
)
from mdspec.parser import parse_spec_file, parse_spec_string
from mdspec.runner import (
    async_process,
    async_rewrite,
    async_run,
    process,
    rewrite,
    run,
)

__version__ = "0.1.0"

__all__ = [
    "Binding",
    "ComparisonMismatch",
    "ConfigError",
    "DiscoveryError",
    "DocumentReport",
    "Example",
    "ExampleResult",
    "HandlerFailure",
    "LockAcquisitionFailure",
    "MalformedDocument",
    "MdSpecError",
    "MissingOutput",
    "ResolvedContext",
    "Section",
    "SpecDocument",
    "SpecFailure",
    "Status",
    "UnresolvedInput",
    "WriteFailure",
    "async_process",
    "async_rewrite",
    "async_run",
    "discover",
    "glob_test",
    "parse_spec_file",
    "parse_spec_string",
    "process",
    "resolve_context",
    "rewrite",
    "run",
]
