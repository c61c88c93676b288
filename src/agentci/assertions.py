from __future__ import annotations

import inspect
import json
import logging
import math
import re
from typing import Any, Awaitable, Callable, Union

from jsonschema import SchemaError
from jsonschema.validators import validator_for

from agentci.judge import Judge
from agentci.models import Assertion, AssertionResult, ChatResponse

logger = logging.getLogger(__name__)

Evaluator = Callable[[ChatResponse, Assertion], Union[AssertionResult, Awaitable[AssertionResult]]]

_MISSING = object()


def _requires(assertion: Assertion, field: str) -> AssertionResult:
    return AssertionResult(passed=False, message=f"{assertion.type} requires a '{field}' field")


def _text_value(assertion: Assertion) -> str | None:
    if assertion.value is None or assertion.value == "":
        return None
    return str(assertion.value)


# --- text ---------------------------------------------------------------------


def assert_contains(response: ChatResponse, assertion: Assertion) -> AssertionResult:
    value = _text_value(assertion)
    if value is None:
        return _requires(assertion, "value")
    passed = value.lower() in response.content.lower()
    message = f'contains "{value}"' if passed else f'expected response to contain "{value}"'
    return AssertionResult(passed=passed, message=message)


def assert_not_contains(response: ChatResponse, assertion: Assertion) -> AssertionResult:
    value = _text_value(assertion)
    if value is None:
        return _requires(assertion, "value")
    passed = value.lower() not in response.content.lower()
    message = f'does not contain "{value}"' if passed else f'expected response to NOT contain "{value}"'
    return AssertionResult(passed=passed, message=message)


def assert_regex(response: ChatResponse, assertion: Assertion) -> AssertionResult:
    pattern = assertion.pattern
    if not pattern:
        return _requires(assertion, "pattern")
    try:
        compiled = re.compile(pattern, re.IGNORECASE)
    except re.error as exc:
        return AssertionResult(passed=False, message=f"invalid regex /{pattern}/: {exc}")
    passed = compiled.search(response.content) is not None
    message = f"matches pattern /{pattern}/" if passed else f"expected response to match /{pattern}/"
    return AssertionResult(passed=passed, message=message)


def assert_starts_with(response: ChatResponse, assertion: Assertion) -> AssertionResult:
    value = _text_value(assertion)
    if value is None:
        return _requires(assertion, "value")
    passed = response.content.lstrip().lower().startswith(value.lower())
    message = f'starts with "{value}"' if passed else f'expected response to start with "{value}"'
    return AssertionResult(passed=passed, message=message)


def assert_ends_with(response: ChatResponse, assertion: Assertion) -> AssertionResult:
    value = _text_value(assertion)
    if value is None:
        return _requires(assertion, "value")
    passed = response.content.rstrip().lower().endswith(value.lower())
    message = f'ends with "{value}"' if passed else f'expected response to end with "{value}"'
    return AssertionResult(passed=passed, message=message)


# --- tokens -------------------------------------------------------------------


def estimate_tokens(text: str) -> int:
    """Approximate token count as words / 0.75, rounded up."""
    return math.ceil(len(text.split()) / 0.75)


def _token_limit(assertion: Assertion) -> float | None:
    value = assertion.value
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    try:
        return float(value) if value is not None else None
    except ValueError:
        return None


def assert_max_tokens(response: ChatResponse, assertion: Assertion) -> AssertionResult:
    limit = _token_limit(assertion)
    if limit is None:
        return AssertionResult(passed=False, message="max_tokens requires a numeric 'value' field")
    estimated = estimate_tokens(response.content)
    passed = estimated <= limit
    message = (
        f"response ~{estimated} tokens <= {assertion.value} max"
        if passed
        else f"expected response to be under {assertion.value} tokens, but got ~{estimated}"
    )
    return AssertionResult(passed=passed, message=message)


def assert_min_tokens(response: ChatResponse, assertion: Assertion) -> AssertionResult:
    limit = _token_limit(assertion)
    if limit is None:
        return AssertionResult(passed=False, message="min_tokens requires a numeric 'value' field")
    estimated = estimate_tokens(response.content)
    passed = estimated >= limit
    message = (
        f"response ~{estimated} tokens >= {assertion.value} min"
        if passed
        else f"expected response to be at least {assertion.value} tokens, but got ~{estimated}"
    )
    return AssertionResult(passed=passed, message=message)


# --- tools --------------------------------------------------------------------


def assert_tool_called(response: ChatResponse, assertion: Assertion) -> AssertionResult:
    tool_name = assertion.name
    if not tool_name:
        return _requires(assertion, "name")
    if any(call.name == tool_name for call in response.tool_calls):
        return AssertionResult(passed=True, message=f'tool "{tool_name}" was called')
    if not response.tool_calls:
        detail = "no tool calls made"
    else:
        detail = f"only [{', '.join(call.name for call in response.tool_calls)}] called"
    return AssertionResult(passed=False, message=f"expected {tool_name} to be called, but {detail}")


def _canonical(value: Any) -> Any:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, dict):
        return {str(key): _canonical(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_canonical(item) for item in value]
    return value


def _normalize(value: Any) -> str:
    """Sorted-key JSON text of ``value``; ``true`` and ``1`` differ, ``1`` and ``1.0`` do not."""
    return json.dumps(_canonical(value), sort_keys=True, default=str)


def _show(value: Any) -> str:
    return "undefined" if value is _MISSING else json.dumps(value, default=str)


def assert_tool_args(response: ChatResponse, assertion: Assertion) -> AssertionResult:
    tool_name = assertion.name
    if not tool_name:
        return _requires(assertion, "name")
    if assertion.contains is None:
        return _requires(assertion, "contains")

    call = next((c for c in response.tool_calls if c.name == tool_name), None)
    if call is None:
        return AssertionResult(
            passed=False,
            message=f"expected {tool_name} to be called with specific args, but it was not called",
        )

    mismatches = []
    for key, expected in assertion.contains.items():
        actual = call.arguments.get(key, _MISSING)
        if actual is _MISSING or _normalize(actual) != _normalize(expected):
            mismatches.append(f"{key}: expected {_show(expected)}, got {_show(actual)}")

    if mismatches:
        return AssertionResult(
            passed=False, message=f'tool "{tool_name}" args mismatch: {"; ".join(mismatches)}'
        )
    return AssertionResult(passed=True, message=f'tool "{tool_name}" called with expected args')


# --- json ---------------------------------------------------------------------


def assert_json_valid(response: ChatResponse, assertion: Assertion) -> AssertionResult:
    try:
        json.loads(response.content)
    except ValueError:
        return AssertionResult(passed=False, message="expected response to be valid JSON")
    return AssertionResult(passed=True, message="response is valid JSON")


def assert_json_schema(response: ChatResponse, assertion: Assertion) -> AssertionResult:
    schema = assertion.json_schema
    if schema is None:
        return _requires(assertion, "schema")
    try:
        parsed = json.loads(response.content)
    except ValueError:
        return AssertionResult(
            passed=False, message="expected response to be valid JSON for schema validation"
        )

    validator_cls = validator_for(schema)
    try:
        validator_cls.check_schema(schema)
    except SchemaError as exc:
        return AssertionResult(passed=False, message=f"invalid JSON schema: {exc.message}")

    errors = sorted(
        validator_cls(schema).iter_errors(parsed),
        key=lambda e: [str(part) for part in e.absolute_path],
    )
    if not errors:
        return AssertionResult(passed=True, message="response matches JSON schema")
    details = "; ".join(
        f"/{'/'.join(str(part) for part in error.absolute_path)}: {error.message}" for error in errors
    )
    return AssertionResult(passed=False, message=f"JSON schema validation failed: {details}")


# --- registry -----------------------------------------------------------------


class AssertionRegistry:
    """Maps assertion type names to evaluators."""

    def __init__(self) -> None:
        self._evaluators: dict[str, Evaluator] = {}

    def register(self, type_name: str, evaluator: Evaluator) -> None:
        self._evaluators[type_name] = evaluator

    def types(self) -> list[str]:
        return list(self._evaluators)

    async def evaluate(self, response: ChatResponse, assertion: Assertion) -> AssertionResult:
        evaluator = self._evaluators.get(assertion.type)
        if evaluator is None:
            return AssertionResult(passed=False, message=f'unknown assertion type: "{assertion.type}"')
        try:
            result = evaluator(response, assertion)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:  # noqa: BLE001
            logger.exception("Assertion %s raised", assertion.type)
            return AssertionResult(passed=False, message=f"{assertion.type} raised an error: {exc}")
        return result


def create_default_registry(judge: Judge | None = None) -> AssertionRegistry:
    """Registry with every built-in assertion; judge types use ``judge`` or a fresh ``Judge``."""
    judge = judge or Judge()
    registry = AssertionRegistry()

    registry.register("contains", assert_contains)
    registry.register("not_contains", assert_not_contains)
    registry.register("regex", assert_regex)
    registry.register("starts_with", assert_starts_with)
    registry.register("ends_with", assert_ends_with)
    registry.register("max_tokens", assert_max_tokens)
    registry.register("min_tokens", assert_min_tokens)
    registry.register("tool_called", assert_tool_called)
    registry.register("tool_args", assert_tool_args)
    registry.register("json_valid", assert_json_valid)
    registry.register("json_schema", assert_json_schema)

    registry.register("llm_judge", judge.assert_llm_judge)
    registry.register("semantic_similarity", judge.assert_semantic_similarity)
    registry.register("sentiment", judge.assert_sentiment)
    return registry
