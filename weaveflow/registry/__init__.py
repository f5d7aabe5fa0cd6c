"""Workflow definition registry and file loading."""

from __future__ import annotations

from .definitions import DefinitionRegistry, load_definition_file

__all__ = [
    "DefinitionRegistry",
    "load_definition_file",
]
