"""In-process registry of workflow definitions."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import yaml
from pydantic import ValidationError

from ..contracts import WorkflowDefinition
from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFINITION_SUFFIXES = (".yaml", ".yml", ".json")


def load_definition_file(path: str | Path) -> List[WorkflowDefinition]:
    """Read one YAML or JSON file holding a definition or a list of them.

    A mapping with a top-level ``workflows`` key is also accepted.

    Raises:
        ConfigurationError: If the file cannot be parsed or does not describe
            valid workflow definitions.
    """
    path = Path(path)
    try:
        with open(path) as f:
            if path.suffix == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Cannot read workflow file {path}: {exc}") from exc

    if isinstance(data, dict) and "workflows" in data:
        data = data["workflows"]
    items = data if isinstance(data, list) else [data]

    definitions = []
    for item in items:
        try:
            definitions.append(WorkflowDefinition.model_validate(item))
        except ValidationError as exc:
            raise ConfigurationError(
                f"Invalid workflow definition in {path}: {exc}"
            ) from exc
    return definitions


class DefinitionRegistry:
    """Workflow definitions keyed by id.

    Registering an id that already exists replaces the earlier definition.
    """

    def __init__(self, definitions: Iterable[WorkflowDefinition] = ()) -> None:
        self._definitions: Dict[str, WorkflowDefinition] = {}
        for definition in definitions:
            self.register(definition)

    def register(self, definition: WorkflowDefinition | Dict[str, Any]) -> WorkflowDefinition:
        if not isinstance(definition, WorkflowDefinition):
            definition = WorkflowDefinition.model_validate(definition)
        if definition.id in self._definitions:
            logger.info(f"Replacing workflow definition {definition.id}")
        self._definitions[definition.id] = definition
        return definition

    def lookup(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        return self._definitions.get(workflow_id)

    def __contains__(self, workflow_id: object) -> bool:
        return workflow_id in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)

    def list(self) -> List[WorkflowDefinition]:
        return sorted(self._definitions.values(), key=lambda d: d.id)

    def load_path(self, path: str | Path) -> List[WorkflowDefinition]:
        """Register every definition found at ``path``.

        ``path`` may be a single file or a directory, which is searched
        recursively for ``.yaml``, ``.yml`` and ``.json`` files.
        """
        path = Path(path).expanduser()
        if not path.exists():
            raise ConfigurationError(f"Workflow path does not exist: {path}")

        files = (
            sorted(p for p in path.rglob("*") if p.suffix in DEFINITION_SUFFIXES)
            if path.is_dir()
            else [path]
        )
        loaded: List[WorkflowDefinition] = []
        for file in files:
            for definition in load_definition_file(file):
                loaded.append(self.register(definition))
        logger.info(f"Loaded {len(loaded)} workflow definitions from {path}")
        return loaded
