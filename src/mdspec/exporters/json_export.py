"""JSON export for parsed spec documents."""

from __future__ import annotations

import json

from mdspec.models import SpecDocument


def export_json(document: SpecDocument, indent: int = 2) -> str:
    """Export a SpecDocument as a JSON string."""
    return json.dumps(document.to_dict(), indent=indent)
