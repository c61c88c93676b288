from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from agentci.errors import ConfigError
from agentci.models import Assertion, ToolDefinition

PROVIDER_NAMES = ("openai", "anthropic", "http")

STARTER_CONFIG = """\
# agentci configuration
version: 1

defaults:
  provider: openai
  model: gpt-4o-mini
  temperature: 0

tests:
  - name: "greeting response"
    system: "You are a helpful customer support agent."
    prompt: "Hello, I need help"
    assertions:
      - type: contains
        value: "help"
      - type: not_contains
        value: "error"

  - name: "stays on topic"
    system: "You are a customer support agent. Only discuss our products."
    prompt: "Write me a poem about the ocean"
    assertions:
      - type: not_contains
        value: "ocean waves"
      - type: contains
        value: "help"
"""


class Defaults(BaseModel):
    provider: str
    model: str
    temperature: float | None = None
    max_tokens: int | None = None
    base_url: str | None = None
    headers: dict[str, str] | None = None
    request_template: dict[str, Any] | None = None
    response_path: str | None = None


class TestCase(BaseModel):
    name: str
    prompt: str  # already carries the "Context: ..." prefix when context is set
    system: str | None = None
    context: str | None = None
    provider: str | None = None
    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    base_url: str | None = None
    tools: list[ToolDefinition] | None = None
    assertions: list[Assertion] = Field(default_factory=list)
    headers: dict[str, str] | None = None
    request_template: dict[str, Any] | None = None
    response_path: str | None = None


class SuiteConfig(BaseModel):
    version: int = 1
    defaults: Defaults
    tests: list[TestCase]


def load_suite(path: Path) -> SuiteConfig:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"Could not parse {path}: {exc}") from exc
    return validate_suite(raw)


def _check_provider(provider: Any, where: str) -> None:
    if provider not in PROVIDER_NAMES:
        raise ConfigError(
            f'Invalid provider "{provider}" in {where}. Must be one of: {", ".join(PROVIDER_NAMES)}'
        )


def _validate_test(test: Any, index: int) -> dict[str, Any]:
    if not isinstance(test, dict):
        raise ConfigError(f"Test {index}: must be a mapping")
    name = test.get("name")
    if not name or not isinstance(name, str):
        raise ConfigError(f"Test {index}: 'name' is required")
    prompt = test.get("prompt")
    if not prompt or not isinstance(prompt, str):
        raise ConfigError(f"Test \"{name}\": 'prompt' is required")
    assertions = test.get("assertions")
    if not isinstance(assertions, list) or not assertions:
        raise ConfigError(f'Test "{name}": at least one assertion is required')
    for j, assertion in enumerate(assertions, start=1):
        if not isinstance(assertion, dict) or not isinstance(assertion.get("type"), str) or not assertion["type"]:
            raise ConfigError(f"Test \"{name}\", assertion {j}: 'type' is required")
    if test.get("provider") is not None:
        _check_provider(test["provider"], f'test "{name}"')

    resolved = dict(test)
    if test.get("context"):
        resolved["prompt"] = f"Context: {test['context']}\n\n{prompt}"
    return resolved


def validate_suite(raw: Any) -> SuiteConfig:
    """Check a parsed YAML document and build the suite it describes."""
    if not isinstance(raw, dict):
        raise ConfigError("Config must be a YAML object")
    if raw.get("version") != 1:
        raise ConfigError(f"Unsupported config version: {raw.get('version')}. Expected 1")

    defaults = raw.get("defaults")
    if not isinstance(defaults, dict):
        raise ConfigError("Config must have a 'defaults' section")
    if not defaults.get("provider") or not isinstance(defaults["provider"], str):
        raise ConfigError("defaults.provider is required and must be a string")
    if not defaults.get("model") or not isinstance(defaults["model"], str):
        raise ConfigError("defaults.model is required and must be a string")
    _check_provider(defaults["provider"], "defaults")

    tests = raw.get("tests")
    if not isinstance(tests, list) or not tests:
        raise ConfigError("Config must have at least one test")

    try:
        return SuiteConfig(
            version=1,
            defaults=Defaults.model_validate(defaults),
            tests=[TestCase.model_validate(_validate_test(test, i)) for i, test in enumerate(tests, start=1)],
        )
    except ValidationError as exc:
        raise ConfigError(f"Invalid config: {exc}") from exc
