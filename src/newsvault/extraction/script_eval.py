"""Restricted evaluator for the object-literal scripts embedded in archived pages.

Article bodies arrive as a script that assigns nested object literals onto
browser globals, e.g. ``window.Fusion=window.Fusion||{};Fusion.globalContent={...}``.
Running a real JavaScript engine is unnecessary for that subset, so this module
interprets only what such scripts need:

* statements separated by ``;`` or line breaks, ``var``/``let``/``const`` declarations
* assignment to identifiers and member paths (``a.b``, ``a["b"]``, ``a[0]``)
* object and array literals, strings, numbers, ``true``/``false``/``null``/``undefined``
* identifier and member reads, ``||``, ``&&``, unary ``!``, ``-``, ``+`` and parentheses

Everything else is rejected with :class:`ScriptSyntaxError`. Evaluation is bounded
by a wall-clock deadline and a nesting-depth limit.
"""

from __future__ import annotations

from dataclasses import dataclass
import math
import re
import time
from typing import Any, Mapping

DEFAULT_EVAL_TIMEOUT_SECONDS = 5.0
DEFAULT_MAX_DEPTH = 64
_DEADLINE_CHECK_INTERVAL = 256

_GLOBAL_ALIASES = ("window", "self", "globalThis")
_DECLARATION_KEYWORDS = {"var", "let", "const"}
_LITERAL_KEYWORDS: dict[str, Any] = {
    "true": True,
    "false": False,
    "null": None,
    "NaN": math.nan,
    "Infinity": math.inf,
}
_PUNCTUATORS = ("||", "&&", "{", "}", "[", "]", "(", ")", ",", ":", ";", ".", "=", "!", "-", "+")

_IDENTIFIER_RE = re.compile(r"[A-Za-z_$][\w$]*")
_NUMBER_RE = re.compile(r"0[xX][0-9a-fA-F]+|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_HEX_DIGITS_RE = re.compile(r"[0-9a-fA-F]+")
_MAX_CODE_POINT = 0x10FFFF

_SIMPLE_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "b": "\b",
    "f": "\f",
    "v": "\v",
    "0": "\0",
}


class ScriptEvaluationError(Exception):
    """Base class for every typed evaluation failure."""


class ScriptSyntaxError(ScriptEvaluationError):
    """Script uses syntax outside the supported literal subset."""


class ScriptRuntimeError(ScriptEvaluationError):
    """Script is well-formed but fails while executing."""


class EvaluationTimeout(ScriptEvaluationError):
    """Evaluation exceeded its time budget."""


class _Undefined:
    __slots__ = ()

    def __repr__(self) -> str:
        return "undefined"

    def __bool__(self) -> bool:
        return False


UNDEFINED = _Undefined()


@dataclass(frozen=True, slots=True)
class _Token:
    kind: str  # "string" | "number" | "ident" | "punct" | "eof"
    value: Any
    pos: int


class _Clock:
    """Deadline shared by the tokenizer and the interpreter."""

    def __init__(self, timeout_seconds: float) -> None:
        self._deadline = time.monotonic() + timeout_seconds
        self._timeout_seconds = timeout_seconds
        self._steps = 0

    def tick(self) -> None:
        self._steps += 1
        if self._steps % _DEADLINE_CHECK_INTERVAL:
            return
        if time.monotonic() > self._deadline:
            raise EvaluationTimeout(f"Script evaluation exceeded {self._timeout_seconds:g}s")


def _tokenize(source: str, clock: _Clock) -> list[_Token]:
    tokens: list[_Token] = []
    pos = 0
    length = len(source)

    while pos < length:
        clock.tick()
        char = source[pos]

        if char.isspace():
            pos += 1
            continue

        if source.startswith("//", pos):
            newline = source.find("\n", pos)
            pos = length if newline == -1 else newline + 1
            continue

        if source.startswith("/*", pos):
            end = source.find("*/", pos + 2)
            if end == -1:
                raise ScriptSyntaxError(f"Unterminated comment at offset {pos}")
            pos = end + 2
            continue

        if char in {'"', "'"}:
            value, pos_after = _read_string(source, pos, clock)
            tokens.append(_Token("string", value, pos))
            pos = pos_after
            continue

        if char.isdigit() or (char == "." and pos + 1 < length and source[pos + 1].isdigit()):
            match = _NUMBER_RE.match(source, pos)
            if match is None:  # pragma: no cover - guarded by the digit check
                raise ScriptSyntaxError(f"Invalid number at offset {pos}")
            text = match.group(0)
            if text[:2].lower() == "0x":
                value: int | float = int(text, 16)
            elif any(c in text for c in ".eE"):
                value = float(text)
            else:
                value = int(text)
            tokens.append(_Token("number", value, pos))
            pos = match.end()
            continue

        match = _IDENTIFIER_RE.match(source, pos)
        if match is not None:
            tokens.append(_Token("ident", match.group(0), pos))
            pos = match.end()
            continue

        for punct in _PUNCTUATORS:
            if source.startswith(punct, pos):
                tokens.append(_Token("punct", punct, pos))
                pos += len(punct)
                break
        else:
            raise ScriptSyntaxError(f"Unsupported character {char!r} at offset {pos}")

    tokens.append(_Token("eof", None, length))
    return tokens


def _read_string(source: str, start: int, clock: _Clock) -> tuple[str, int]:
    quote = source[start]
    parts: list[str] = []
    pos = start + 1
    length = len(source)

    while pos < length:
        clock.tick()
        char = source[pos]
        if char == quote:
            return "".join(parts), pos + 1
        if char == "\n":
            break
        if char != "\\":
            parts.append(char)
            pos += 1
            continue

        pos += 1
        if pos >= length:
            break
        escape = source[pos]
        if escape in _SIMPLE_ESCAPES:
            parts.append(_SIMPLE_ESCAPES[escape])
            pos += 1
        elif escape == "x":
            parts.append(chr(_parse_hex(source, pos + 1, 2)))
            pos += 3
        elif escape == "u" and source.startswith("{", pos + 1):
            end = source.find("}", pos + 2)
            if end == -1:
                raise ScriptSyntaxError(f"Invalid unicode escape at offset {pos}")
            code = _parse_hex(source, pos + 2, end - pos - 2)
            if code > _MAX_CODE_POINT:
                raise ScriptSyntaxError(f"Code point out of range at offset {pos}")
            parts.append(chr(code))
            pos = end + 1
        elif escape == "u":
            code = _parse_hex(source, pos + 1, 4)
            pos += 5
            # Join UTF-16 surrogate pairs.
            if 0xD800 <= code <= 0xDBFF and source.startswith("\\u", pos):
                low = _parse_hex(source, pos + 2, 4)
                if 0xDC00 <= low <= 0xDFFF:
                    code = 0x10000 + ((code - 0xD800) << 10) + (low - 0xDC00)
                    pos += 6
            parts.append(chr(code))
        elif escape == "\r":
            pos += 2 if source.startswith("\r\n", pos) else 1
        elif escape == "\n":
            pos += 1
        else:
            parts.append(escape)
            pos += 1

    raise ScriptSyntaxError(f"Unterminated string starting at offset {start}")


def _parse_hex(source: str, start: int, size: int) -> int:
    digits = source[start : start + size]
    if len(digits) != size or _HEX_DIGITS_RE.fullmatch(digits) is None:
        raise ScriptSyntaxError(f"Invalid hex escape at offset {start}")
    return int(digits, 16)


class _Reference:
    """Assignable location produced by identifier and member expressions."""

    __slots__ = ("container", "key", "binding")

    def __init__(self, container: Any, key: Any, *, binding: bool = False) -> None:
        self.container = container
        self.key = key
        self.binding = binding


class _Interpreter:
    def __init__(self, tokens: list[_Token], scope: dict[str, Any], clock: _Clock, max_depth: int) -> None:
        self._tokens = tokens
        self._index = 0
        self._scope = scope
        self._clock = clock
        self._max_depth = max_depth
        self._depth = 0

    # token helpers

    def _peek(self, offset: int = 0) -> _Token:
        return self._tokens[min(self._index + offset, len(self._tokens) - 1)]

    def _advance(self) -> _Token:
        self._clock.tick()
        token = self._tokens[self._index]
        if token.kind != "eof":
            self._index += 1
        return token

    def _is_punct(self, value: str, offset: int = 0) -> bool:
        token = self._peek(offset)
        return token.kind == "punct" and token.value == value

    def _expect(self, value: str) -> None:
        token = self._advance()
        if token.kind != "punct" or token.value != value:
            raise ScriptSyntaxError(f"Expected {value!r} at offset {token.pos}, found {token.value!r}")

    def _enter(self) -> None:
        self._depth += 1
        if self._depth > self._max_depth:
            raise ScriptRuntimeError(f"Literal nesting deeper than {self._max_depth} levels")

    def _leave(self) -> None:
        self._depth -= 1

    # statements

    def run(self) -> None:
        while self._peek().kind != "eof":
            if self._is_punct(";"):
                self._advance()
                continue
            self._statement()
            if self._is_punct(";"):
                self._advance()

    def _statement(self) -> None:
        token = self._peek()
        if token.kind == "ident" and token.value in _DECLARATION_KEYWORDS:
            self._advance()
            self._declarations()
            return
        self._assignment(live=True)

    def _declarations(self) -> None:
        while True:
            token = self._advance()
            if token.kind != "ident":
                raise ScriptSyntaxError(f"Expected identifier at offset {token.pos}")
            value: Any = UNDEFINED
            if self._is_punct("="):
                self._advance()
                value = self._value(self._assignment(live=True))
            self._scope[token.value] = value
            if not self._is_punct(","):
                return
            self._advance()

    # expressions

    def _assignment(self, *, live: bool) -> Any:
        start = self._peek()
        target = self._logical_or(live=live)
        if not self._is_punct("="):
            return target

        self._advance()
        value = self._value(self._assignment(live=live)) if live else self._assignment(live=False)
        if not live:
            return UNDEFINED
        if not isinstance(target, _Reference):
            raise ScriptSyntaxError(f"Invalid assignment target at offset {start.pos}")
        self._store(target, value)
        return value

    def _logical_or(self, *, live: bool) -> Any:
        left = self._logical_and(live=live)
        while self._is_punct("||"):
            self._advance()
            left_value = self._value(left) if live else UNDEFINED
            take_left = live and _truthy(left_value)
            right = self._logical_and(live=live and not take_left)
            if live:
                left = left_value if take_left else self._value(right)
        return left

    def _logical_and(self, *, live: bool) -> Any:
        left = self._unary(live=live)
        while self._is_punct("&&"):
            self._advance()
            left_value = self._value(left) if live else UNDEFINED
            take_left = live and not _truthy(left_value)
            right = self._unary(live=live and not take_left)
            if live:
                left = left_value if take_left else self._value(right)
        return left

    def _unary(self, *, live: bool) -> Any:
        if self._is_punct("!"):
            self._advance()
            operand = self._unary(live=live)
            return (not _truthy(self._value(operand))) if live else UNDEFINED
        if self._is_punct("-") or self._is_punct("+"):
            sign = self._advance().value
            operand = self._unary(live=live)
            if not live:
                return UNDEFINED
            number = self._value(operand)
            if isinstance(number, bool) or not isinstance(number, (int, float)):
                raise ScriptSyntaxError(f"Unary {sign!r} is only supported on numbers")
            return -number if sign == "-" else number
        return self._postfix(live=live)

    def _postfix(self, *, live: bool) -> Any:
        expression = self._primary(live=live)
        while True:
            if self._is_punct("."):
                self._advance()
                token = self._advance()
                if token.kind != "ident":
                    raise ScriptSyntaxError(f"Expected property name at offset {token.pos}")
                expression = self._member(expression, token.value, live=live)
            elif self._is_punct("["):
                self._advance()
                key = self._assignment(live=live)
                self._expect("]")
                expression = self._member(expression, self._value(key) if live else UNDEFINED, live=live)
            elif self._is_punct("("):
                raise ScriptSyntaxError(f"Function calls are not supported (offset {self._peek().pos})")
            else:
                return expression

    def _member(self, base: Any, key: Any, *, live: bool) -> Any:
        if not live:
            return UNDEFINED
        container = self._value(base)
        if container is None or container is UNDEFINED:
            raise ScriptRuntimeError(f"Cannot read property {key!r} of {_describe(container)}")
        return _Reference(container, key)

    def _primary(self, *, live: bool) -> Any:
        token = self._peek()
        if token.kind == "string" or token.kind == "number":
            self._advance()
            return token.value
        if token.kind == "ident":
            self._advance()
            if token.value in _LITERAL_KEYWORDS:
                return _LITERAL_KEYWORDS[token.value]
            if token.value == "undefined":
                return UNDEFINED
            if token.value in _DECLARATION_KEYWORDS:
                raise ScriptSyntaxError(f"Unexpected {token.value!r} at offset {token.pos}")
            return _Reference(self._scope, token.value, binding=True)
        if self._is_punct("{"):
            return self._object(live=live)
        if self._is_punct("["):
            return self._array(live=live)
        if self._is_punct("("):
            self._advance()
            inner = self._assignment(live=live)
            self._expect(")")
            return self._value(inner) if live else UNDEFINED
        raise ScriptSyntaxError(f"Unexpected token {token.value!r} at offset {token.pos}")

    def _object(self, *, live: bool) -> dict[str, Any]:
        self._enter()
        self._expect("{")
        result: dict[str, Any] = {}
        while not self._is_punct("}"):
            key_token = self._advance()
            if key_token.kind == "string" or key_token.kind == "ident":
                key = key_token.value
            elif key_token.kind == "number":
                key = _property_key(key_token.value)
            else:
                raise ScriptSyntaxError(f"Invalid property name at offset {key_token.pos}")
            self._expect(":")
            value = self._assignment(live=live)
            result[key] = self._value(value) if live else UNDEFINED
            if not self._is_punct(","):
                break
            self._advance()
        self._expect("}")
        self._leave()
        return result

    def _array(self, *, live: bool) -> list[Any]:
        self._enter()
        self._expect("[")
        result: list[Any] = []
        while not self._is_punct("]"):
            if self._is_punct(","):
                self._advance()
                result.append(UNDEFINED)
                continue
            value = self._assignment(live=live)
            result.append(self._value(value) if live else UNDEFINED)
            if not self._is_punct(","):
                break
            self._advance()
        self._expect("]")
        self._leave()
        return result

    # references

    def _value(self, expression: Any) -> Any:
        if not isinstance(expression, _Reference):
            return expression

        container = expression.container
        key = expression.key
        if expression.binding:
            if key not in self._scope:
                raise ScriptRuntimeError(f"{key} is not defined")
            return self._scope[key]
        if isinstance(container, dict):
            return container.get(_property_key(key), UNDEFINED)
        if isinstance(container, (list, str)):
            if key == "length":
                return len(container)
            index = _array_index(key)
            if index is not None and index < len(container):
                return container[index]
        return UNDEFINED

    def _store(self, target: _Reference, value: Any) -> None:
        container = target.container
        if isinstance(container, dict):
            container[_property_key(target.key)] = value
            return
        if isinstance(container, list):
            index = _array_index(target.key)
            if index is None:
                raise ScriptRuntimeError(f"Cannot assign property {target.key!r} on an array")
            while len(container) <= index:
                container.append(UNDEFINED)
            container[index] = value
            return
        raise ScriptRuntimeError(f"Cannot assign property {target.key!r} on {_describe(container)}")


def _truthy(value: Any) -> bool:
    if value is UNDEFINED or value is None:
        return False
    if isinstance(value, float) and math.isnan(value):
        return False
    if isinstance(value, (dict, list)):
        return True
    return bool(value)


def _property_key(key: Any) -> str:
    if isinstance(key, bool):
        return "true" if key else "false"
    if isinstance(key, float) and key.is_integer():
        return str(int(key))
    if key is UNDEFINED:
        return "undefined"
    if key is None:
        return "null"
    return str(key)


def _array_index(key: Any) -> int | None:
    if isinstance(key, bool):
        return None
    if isinstance(key, int):
        return key if key >= 0 else None
    if isinstance(key, float) and key.is_integer() and key >= 0:
        return int(key)
    if isinstance(key, str) and key.isdigit():
        return int(key)
    return None


def _describe(value: Any) -> str:
    if value is UNDEFINED:
        return "undefined"
    if value is None:
        return "null"
    return type(value).__name__


class ScriptSandbox:
    """Evaluate literal-assignment scripts against a minimal set of global bindings."""

    def __init__(
        self,
        *,
        timeout_seconds: float = DEFAULT_EVAL_TIMEOUT_SECONDS,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        if max_depth < 1:
            raise ValueError("max_depth must be >= 1")
        self._timeout_seconds = timeout_seconds
        self._max_depth = max_depth

    def evaluate(self, script: str, bindings: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """Run `script` and return the resulting global object graph.

        `window`, `self` and `globalThis` refer to the global scope itself, so
        `window.Fusion = {...}` and a later bare `Fusion.x = ...` see the same object.
        """

        clock = _Clock(self._timeout_seconds)
        scope: dict[str, Any] = dict(bindings or {})
        for alias in _GLOBAL_ALIASES:
            scope[alias] = scope

        tokens = _tokenize(script, clock)
        try:
            _Interpreter(tokens, scope, clock, self._max_depth).run()
        except RecursionError as exc:
            raise ScriptRuntimeError("Expression nesting exceeds the interpreter stack") from exc

        return {key: value for key, value in scope.items() if value is not scope}
