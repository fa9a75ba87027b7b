"""
Pod specification templates.

A template is YAML text with ``{{name}}`` placeholders. Compiling it against
a binding map parses the document skeleton with each placeholder held by a
neutral slot token, then writes the bound text into the parsed strings. Bound
values therefore always come out as strings, exactly as given: ``15`` stays
``"15"``, ``1.10`` stays ``"1.10"`` and backslashes or quotes are not read as
YAML syntax.

Usage:
    compiler = TemplateCompiler(load_template())
    body = compiler.compile({"build_id": "15", ...})
"""

import re
from typing import Any, Callable, Dict, FrozenSet, List, Mapping

import yaml

from pod_launcher.common.exceptions import TemplateBindingError, TemplateRenderError

# {{name}} with optional inner whitespace
PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")

# Plain YAML scalar standing in for the n-th placeholder occurrence
SLOT_TOKEN = "__pod_launcher_slot_{}__"
SLOT_PATTERN = re.compile(r"__pod_launcher_slot_(\d+)__")


def find_placeholders(document: str) -> FrozenSet[str]:
    """Return the set of placeholder names referenced by a template."""
    return frozenset(PLACEHOLDER_PATTERN.findall(document))


def _fill_slots(node: Any, replace: Callable[["re.Match[str]"], str]) -> Any:
    if isinstance(node, str):
        return SLOT_PATTERN.sub(replace, node)
    if isinstance(node, dict):
        return {
            _fill_slots(key, replace): _fill_slots(value, replace)
            for key, value in node.items()
        }
    if isinstance(node, list):
        return [_fill_slots(item, replace) for item in node]
    return node


def compile_template(document: str, bindings: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Compile a template into a job specification mapping.

    Args:
        document: Template text
        bindings: Placeholder name to substitution value

    Raises:
        TemplateBindingError: If any referenced placeholder has no binding
        TemplateRenderError: If the template is not a YAML mapping
    """
    missing = find_placeholders(document) - set(bindings)
    if missing:
        raise TemplateBindingError(missing)

    slots: List[str] = []

    def to_slot(match: "re.Match[str]") -> str:
        slots.append(match.group(1))
        return SLOT_TOKEN.format(len(slots) - 1)

    skeleton = PLACEHOLDER_PATTERN.sub(to_slot, document)
    try:
        payload = yaml.safe_load(skeleton)
    except yaml.YAMLError as e:
        raise TemplateRenderError("Template is not valid YAML", cause=e) from e

    if not isinstance(payload, dict):
        raise TemplateRenderError(
            f"Template must describe a mapping, got {type(payload).__name__}"
        )
    return _fill_slots(payload, lambda m: str(bindings[slots[int(m.group(1))]]))


class TemplateCompiler:
    """Holds one template document and compiles it against binding maps."""

    def __init__(self, document: str):
        self._document = document
        self._placeholders = find_placeholders(document)

    @property
    def document(self) -> str:
        return self._document

    @property
    def placeholders(self) -> FrozenSet[str]:
        """Placeholder names every binding map must provide."""
        return self._placeholders

    def compile(self, bindings: Mapping[str, Any]) -> Dict[str, Any]:
        return compile_template(self._document, bindings)
