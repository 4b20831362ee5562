"""YAML export for parsed spec documents."""

from __future__ import annotations

import yaml

from mdspec.models import SpecDocument


def export_yaml(document: SpecDocument) -> str:
    """Export a SpecDocument as a YAML string, keeping field order."""
    return yaml.safe_dump(document.to_dict(), sort_keys=False, allow_unicode=True)
