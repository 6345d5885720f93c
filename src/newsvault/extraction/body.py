"""Body text recovery from the embedded client-state script."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Iterable, Protocol, runtime_checkable

from newsvault.extraction.models import ContentElement
from newsvault.extraction.normalization import clean_fragments
from newsvault.extraction.script_eval import EvaluationTimeout, ScriptEvaluationError, ScriptSandbox

logger = logging.getLogger(__name__)

RAW_MARKUP_KIND = "raw_html"
PLAIN_TEXT_KIND = "text"
TEXT_BEARING_KINDS = frozenset({RAW_MARKUP_KIND, PLAIN_TEXT_KIND})

STRATEGY_EVALUATE = "evaluate"
STRATEGY_SCAN = "scan"
BODY_STRATEGIES = (STRATEGY_EVALUATE, STRATEGY_SCAN)

_STRING_LITERAL = r'"((?:[^"\\]|\\.)*)"'
_CONTENT_PAIR_RE = re.compile(
    r'"type"\s*:\s*' + _STRING_LITERAL + r'\s*,\s*"content"\s*:\s*' + _STRING_LITERAL
    + r'|"content"\s*:\s*' + _STRING_LITERAL + r'\s*,\s*"type"\s*:\s*' + _STRING_LITERAL,
    re.DOTALL,
)


@runtime_checkable
class BodyStrategy(Protocol):
    """Turn body script text into an ordered list of content elements."""

    name: str

    def elements(self, script: str) -> list[ContentElement]:
        """Return text-bearing content elements in document order."""


class PatternScanStrategy:
    """Collect adjacent `"type"`/`"content"` pairs straight from the script text."""

    name = STRATEGY_SCAN

    def elements(self, script: str) -> list[ContentElement]:
        found: list[ContentElement] = []
        for match in _CONTENT_PAIR_RE.finditer(script):
            if match.group(1) is not None:
                kind, content = match.group(1), match.group(2)
            else:
                content, kind = match.group(3), match.group(4)
            kind_text = _decode_json_string(kind)
            if kind_text not in TEXT_BEARING_KINDS:
                continue
            found.append(ContentElement(kind=kind_text, content=_decode_json_string(content)))
        return found


class SandboxedEvaluationStrategy:
    """Evaluate the script and walk `globalContent.content_elements`."""

    name = STRATEGY_EVALUATE

    def __init__(self, sandbox: ScriptSandbox | None = None) -> None:
        self._sandbox = sandbox or ScriptSandbox()

    def elements(self, script: str) -> list[ContentElement]:
        scope = self._sandbox.evaluate(script)
        global_content = _find_global_content(scope)
        if global_content is None:
            return []

        raw_elements = global_content.get("content_elements")
        if not isinstance(raw_elements, list):
            return []

        found: list[ContentElement] = []
        for element in raw_elements:
            if not isinstance(element, dict):
                continue
            kind = element.get("type")
            content = element.get("content")
            if kind in TEXT_BEARING_KINDS and isinstance(content, str):
                found.append(ContentElement(kind=kind, content=content))
        return found


def _find_global_content(scope: dict[str, Any]) -> dict[str, Any] | None:
    fusion = scope.get("Fusion")
    candidates: list[Any] = []
    if isinstance(fusion, dict):
        candidates.append(fusion.get("globalContent"))
    candidates.append(scope.get("globalContent"))
    for candidate in candidates:
        if isinstance(candidate, dict):
            return candidate
    return None


def _decode_json_string(escaped: str) -> str:
    try:
        return json.loads(f'"{escaped}"', strict=False)
    except json.JSONDecodeError:
        return escaped


def build_strategy(name: str, *, sandbox: ScriptSandbox | None = None) -> BodyStrategy:
    if name == STRATEGY_EVALUATE:
        return SandboxedEvaluationStrategy(sandbox)
    if name == STRATEGY_SCAN:
        return PatternScanStrategy()
    raise ValueError(f"Unknown body strategy: {name!r} (expected one of {', '.join(BODY_STRATEGIES)})")


def clean_elements(elements: Iterable[ContentElement]) -> list[str]:
    return clean_fragments(element.content for element in elements)


def extract_body(script: str | None, strategy: BodyStrategy) -> list[str] | None:
    """Return cleaned body fragments, or None when there is no body script.

    Evaluation failures degrade to an empty body; a timeout is re-raised so the
    caller can fail the task.
    """

    if script is None:
        return None

    try:
        elements = strategy.elements(script)
    except EvaluationTimeout:
        raise
    except ScriptEvaluationError as exc:
        logger.warning("Body script evaluation failed (%s): %s", strategy.name, exc)
        return []

    return clean_elements(elements)
