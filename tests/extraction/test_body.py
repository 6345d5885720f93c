from __future__ import annotations

import pytest

from newsvault.extraction.body import (
    PatternScanStrategy,
    SandboxedEvaluationStrategy,
    build_strategy,
    extract_body,
)
from newsvault.extraction.normalization import clean_fragments
from newsvault.extraction.script_eval import EvaluationTimeout, ScriptSandbox

_BODY_SCRIPT = r"""window.Fusion=window.Fusion||{};Fusion.arcSite="appledaily";Fusion.globalContent={"_id":"ABC","type":"story","content_elements":[{"_id":"1","type":"raw_html","content":"<p>Hello</p>"},{"_id":"2","type":"text","content":"World\r"},{"_id":"3","type":"image","content":"ignored"},{"_id":"4","type":"raw_html","content":"在APP內訂閱"}]};Fusion.globalContentConfig={"source":"content-api"};"""


@pytest.mark.parametrize("strategy", [PatternScanStrategy(), SandboxedEvaluationStrategy()])
def test_body_elements_are_cleaned_into_raw_content(strategy) -> None:
    assert extract_body(_BODY_SCRIPT, strategy) == ["Hello", "World"]


def test_strategies_agree_on_escaped_content_and_key_order() -> None:
    script = (
        "window.Fusion=window.Fusion||{};"
        'Fusion.globalContent={"content_elements":['
        r'{"content":"<div style=\"color:red\">Quoted \"text\"</div>","type":"raw_html"},'
        r'{"type":"text","content":"lineé\n"},'
        r'{"type":"raw_html","content":"<b></b>"}'
        "]};"
    )

    scanned = extract_body(script, PatternScanStrategy())
    evaluated = extract_body(script, SandboxedEvaluationStrategy())

    assert scanned == evaluated == ['Quoted "text"', "lineé\n"]


def test_truncated_markup_leftover_is_dropped() -> None:
    assert clean_fragments(["First", "<div style=\\"]) == ["First"]


def test_missing_script_yields_none_and_broken_script_yields_empty() -> None:
    strategy = SandboxedEvaluationStrategy()

    assert extract_body(None, strategy) is None
    assert extract_body("Fusion.globalContent = {", strategy) == []


def test_evaluation_without_global_content_yields_empty_body() -> None:
    assert extract_body("window.Fusion = {};", SandboxedEvaluationStrategy()) == []


def test_evaluation_timeout_propagates() -> None:
    strategy = SandboxedEvaluationStrategy(ScriptSandbox(timeout_seconds=1e-9))
    script = "var a = [" + ",".join('"x"' for _ in range(5000)) + "];"

    with pytest.raises(EvaluationTimeout):
        extract_body(script, strategy)


def test_scan_strategy_is_unaffected_by_unsupported_syntax() -> None:
    script = 'init(function(){ return {"type":"text","content":"Still here"}; });'

    assert extract_body(script, PatternScanStrategy()) == ["Still here"]
    assert extract_body(script, SandboxedEvaluationStrategy()) == []


def test_build_strategy_by_name() -> None:
    assert isinstance(build_strategy("scan"), PatternScanStrategy)
    assert isinstance(build_strategy("evaluate"), SandboxedEvaluationStrategy)
    with pytest.raises(ValueError, match="Unknown body strategy"):
        build_strategy("regex")
