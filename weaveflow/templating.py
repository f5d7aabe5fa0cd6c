"""Resolution of ``$input.*`` and ``$<step>.*`` references.

Two reference forms are understood:

* ``$input.<path>`` reads the invocation's input bag.
* ``$<stepId>.<path>`` (or ``$steps.<stepId>.<path>``) reads the output of a
  step that already completed.

``<path>`` is a dot-separated list of segments. Integer segments index into
lists and a ``*`` segment maps the rest of the path over every list element,
so ``$search.items.*.id`` yields a list of ids.

Strings that merely *contain* ``{{$ref}}`` placeholders are interpolated;
``{{input.<path>}}`` and ``{{steps.<id>.<path>}}`` work without the ``$``.
Everything else is returned untouched.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence, Set

from .constants import INPUT_NAMESPACE, STEPS_NAMESPACE
from .errors import TemplateResolutionError

_REFERENCE = re.compile(r"^\$([A-Za-z_][\w-]*)((?:\.[^.\s]*)*)$")
_PLACEHOLDER = re.compile(r"\{\{\s*(\$[^{}\s]+|(?:input|steps)\.[^{}\s]+)\s*\}\}")


def _placeholder_reference(text: str) -> str:
    return text if text.startswith("$") else f"${text}"


@dataclass(frozen=True)
class TemplateContext:
    """Values a template may reference during one invocation."""

    inputs: Mapping[str, Any] = field(default_factory=dict)
    step_results: Mapping[str, Any] = field(default_factory=dict)


def is_reference(value: Any) -> bool:
    return isinstance(value, str) and _REFERENCE.match(value) is not None


def _split(template: str) -> tuple[str, List[str]]:
    match = _REFERENCE.match(template)
    if match is None:
        raise TemplateResolutionError(template, template, "not a reference")
    head, tail = match.group(1), match.group(2)
    segments = tail[1:].split(".") if tail else []
    return head, segments


def _root(template: str, context: TemplateContext) -> tuple[Any, List[str]]:
    head, segments = _split(template)
    if head == INPUT_NAMESPACE:
        return context.inputs, segments

    if head == STEPS_NAMESPACE:
        if not segments:
            raise TemplateResolutionError(template, head, "missing step id")
        head, segments = segments[0], segments[1:]

    if head not in context.step_results:
        raise TemplateResolutionError(
            template, head, f"step '{head}' has no recorded output"
        )
    return context.step_results[head], segments


def _walk(value: Any, segments: Sequence[str], template: str) -> Any:
    for position, segment in enumerate(segments):
        if segment == "":
            raise TemplateResolutionError(template, segment, "empty path segment")

        if segment == "*":
            if not isinstance(value, (list, tuple)):
                raise TemplateResolutionError(
                    template, segment, "wildcard applied to a non-list value"
                )
            rest = segments[position + 1 :]
            return [_walk(item, rest, template) for item in value]

        if isinstance(value, Mapping):
            if segment not in value:
                raise TemplateResolutionError(template, segment, "missing field")
            value = value[segment]
        elif isinstance(value, (list, tuple)):
            try:
                value = value[int(segment)]
            except ValueError:
                raise TemplateResolutionError(
                    template, segment, "expected a list index"
                ) from None
            except IndexError:
                raise TemplateResolutionError(
                    template, segment, "list index out of range"
                ) from None
        else:
            raise TemplateResolutionError(
                template,
                segment,
                f"cannot read a field of {type(value).__name__}",
            )
    return value


def stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return json.dumps(value)
    if isinstance(value, (list, tuple)):
        if all(not isinstance(v, (dict, list, tuple)) for v in value):
            return ", ".join(stringify(v) for v in value)
        return json.dumps(value, default=str)
    if isinstance(value, dict):
        return json.dumps(value, default=str)
    return str(value)


def resolve(template: Any, context: TemplateContext) -> Any:
    """Resolve a single template value against ``context``.

    Raises:
        TemplateResolutionError: If a referenced step has no output yet or a
            path segment does not exist.
    """
    if not isinstance(template, str):
        return template

    if _REFERENCE.match(template):
        root, segments = _root(template, context)
        return _walk(root, segments, template)

    if "{{" in template:
        def _interpolate(match: re.Match[str]) -> str:
            return stringify(resolve(_placeholder_reference(match.group(1)), context))

        return _PLACEHOLDER.sub(_interpolate, template)

    return template


def resolve_value(value: Any, context: TemplateContext) -> Any:
    """Resolve templates nested anywhere inside dicts and lists."""
    if isinstance(value, dict):
        return {key: resolve_value(item, context) for key, item in value.items()}
    if isinstance(value, list):
        return [resolve_value(item, context) for item in value]
    return resolve(value, context)


def resolve_inputs(
    inputs: Mapping[str, Any], context: TemplateContext
) -> Dict[str, Any]:
    """Resolve a step's ``inputs`` mapping into concrete values."""
    return {name: resolve_value(value, context) for name, value in inputs.items()}


def referenced_steps(value: Any) -> Set[str]:
    """Step ids referenced anywhere inside ``value``."""
    found: Set[str] = set()
    if isinstance(value, dict):
        for item in value.values():
            found |= referenced_steps(item)
    elif isinstance(value, list):
        for item in value:
            found |= referenced_steps(item)
    elif isinstance(value, str):
        refs = (
            [value]
            if _REFERENCE.match(value)
            else [_placeholder_reference(r) for r in _PLACEHOLDER.findall(value)]
        )
        for ref in refs:
            if not _REFERENCE.match(ref):
                continue
            head, segments = _split(ref)
            if head == INPUT_NAMESPACE:
                continue
            if head == STEPS_NAMESPACE:
                if not segments:
                    continue
                head = segments[0]
            found.add(head)
    return found
