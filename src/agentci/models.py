from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ToolDefinition(BaseModel):
    name: str
    description: str = ""
    parameters: dict[str, Any] = Field(default_factory=dict)


class ToolCall(BaseModel):
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class Usage(BaseModel):
    model_config = ConfigDict(extra="allow")

    prompt_tokens: int = 0
    completion_tokens: int = 0


class ChatRequest(BaseModel):
    """One normalized chat call. ``None`` temperature/max_tokens means unset."""

    model_config = ConfigDict(frozen=True)

    model: str
    system: str | None = None
    prompt: str
    temperature: float | None = 0.0
    max_tokens: int | None = 500
    tools: list[ToolDefinition] | None = None


class ChatResponse(BaseModel):
    content: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    usage: Usage | None = None
    model: str | None = None


class Assertion(BaseModel):
    """A single predicate from a test case. Fields used depend on ``type``."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    type: str
    value: str | int | float | None = None
    pattern: str | None = None
    name: str | None = None
    contains: dict[str, Any] | None = None
    json_schema: dict[str, Any] | None = Field(default=None, alias="schema")


class AssertionResult(BaseModel):
    passed: bool
    message: str


class JudgeVerdict(BaseModel):
    passed: bool
    reasoning: str


class AssertionOutcome(BaseModel):
    assertion: Assertion
    result: AssertionResult


class TestResult(BaseModel):
    name: str
    passed: bool
    duration: float  # milliseconds
    assertions: list[AssertionOutcome] = Field(default_factory=list)
    response: ChatResponse | None = None
    error: str | None = None


class RunResult(BaseModel):
    results: list[TestResult]
    total: int
    passed: int
    failed: int
    duration: float
