from __future__ import annotations

import json
import logging
from dataclasses import dataclass

import httpx

from agentci.config import Settings
from agentci.errors import JudgeError
from agentci.models import Assertion, AssertionResult, ChatResponse, JudgeVerdict

logger = logging.getLogger(__name__)

OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"
ANTHROPIC_MESSAGES_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"

JUDGE_BACKENDS = ("openai", "anthropic")
DEFAULT_JUDGE_MODELS = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-5-haiku-20241022",
}
JUDGE_MAX_TOKENS = 300
MAX_REASONING_CHARS = 500

LLM_JUDGE_PROMPT = """\
You are a strict test evaluator. Given an AI agent's response and a criterion, determine if the response meets the criterion.

Respond with JSON: {"pass": true/false, "reasoning": "brief explanation"}

Be strict but fair. If the criterion is ambiguous, interpret it reasonably.
"""

SEMANTIC_SIMILARITY_PROMPT = """\
You are a semantic similarity evaluator. Compare two texts and determine if they convey the same core meaning, even if worded differently.

Respond with JSON: {"pass": true/false, "reasoning": "brief explanation"}

Pass if the core meaning/answer is equivalent. Fail if the meaning differs substantively. Ignore minor stylistic differences, extra detail, or different phrasing.
"""

SENTIMENT_PROMPT = """\
You are a tone/sentiment evaluator. Determine if a text matches the expected tone or sentiment.

Respond with JSON: {"pass": true/false, "reasoning": "brief explanation"}

Common tones: professional, friendly, neutral, empathetic, formal, casual, helpful, apologetic, confident, cautious.
Be reasonable: the text doesn't need to be a perfect example, just broadly matching the expected tone.
"""

JSON_ONLY_SUFFIX = "\n\nRespond with the JSON object only, no other text."


@dataclass
class JudgeBackend:
    name: str
    api_key: str
    model: str


def select_backend(settings: Settings) -> JudgeBackend:
    """Pick the judge backend: explicit override, else the first configured key (OpenAI first)."""
    keys = {"openai": settings.openai_api_key, "anthropic": settings.anthropic_api_key}

    if settings.judge_provider:
        name = settings.judge_provider.lower()
        if name not in JUDGE_BACKENDS:
            raise JudgeError(
                f"Unknown judge provider '{settings.judge_provider}'. Must be one of: {', '.join(JUDGE_BACKENDS)}"
            )
        if not keys[name]:
            raise JudgeError(
                f"AGENTCI_JUDGE_PROVIDER is {name} but {name.upper()}_API_KEY is not set"
            )
    else:
        name = next((backend for backend in JUDGE_BACKENDS if keys[backend]), "")
        if not name:
            raise JudgeError(
                "No API key found for judge assertions. Set OPENAI_API_KEY or ANTHROPIC_API_KEY."
            )

    return JudgeBackend(
        name=name,
        api_key=keys[name] or "",
        model=settings.judge_model or DEFAULT_JUDGE_MODELS[name],
    )


def parse_verdict(content: str) -> JudgeVerdict:
    """Decode the first JSON object in ``content``; tolerates code fences around it."""
    start = content.find("{")
    if start == -1:
        raise JudgeError(f"Failed to parse judge response: {content[:200]}")
    try:
        payload, _ = json.JSONDecoder().raw_decode(content, start)
    except ValueError as exc:
        raise JudgeError(f"Failed to parse judge response: {content[:200]}") from exc
    if not isinstance(payload, dict):
        raise JudgeError(f"Failed to parse judge response: {content[:200]}")

    passed = payload.get("pass")
    if passed is None:
        passed = payload.get("passed")
    reasoning = payload.get("reasoning")
    if reasoning is None:
        reasoning = payload.get("reason")
    if reasoning is None:
        reasoning = "No reasoning provided"
    return JudgeVerdict(passed=bool(passed), reasoning=str(reasoning)[:MAX_REASONING_CHARS])


@dataclass
class Judge:
    """Answers judge assertions with one constrained completion per call.

    Credentials are looked up on every call, from ``settings`` when given or
    from a fresh ``Settings()`` read of the environment otherwise.
    """

    settings: Settings | None = None
    timeout: float | None = None
    transport: httpx.AsyncBaseTransport | None = None

    async def ask(self, system_prompt: str, user_prompt: str) -> JudgeVerdict:
        try:
            settings = self.settings or Settings()
            backend = select_backend(settings)
            timeout = self.timeout if self.timeout is not None else settings.timeout_seconds
            logger.debug("Judging with %s (%s)", backend.name, backend.model)
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(timeout), transport=self.transport
            ) as client:
                if backend.name == "anthropic":
                    content = await self._ask_anthropic(client, backend, system_prompt, user_prompt)
                else:
                    content = await self._ask_openai(client, backend, system_prompt, user_prompt)
            return parse_verdict(content)
        except JudgeError as exc:
            return JudgeVerdict(passed=False, reasoning=str(exc))
        except httpx.HTTPError as exc:
            return JudgeVerdict(passed=False, reasoning=f"Judge request failed: {exc}")

    async def _ask_openai(
        self,
        client: httpx.AsyncClient,
        backend: JudgeBackend,
        system_prompt: str,
        user_prompt: str,
    ) -> str:
        response = await client.post(
            OPENAI_CHAT_URL,
            headers={"Authorization": f"Bearer {backend.api_key}", "Content-Type": "application/json"},
            json={
                "model": backend.model,
                "temperature": 0,
                "max_tokens": JUDGE_MAX_TOKENS,
                "response_format": {"type": "json_object"},
                "messages": [
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
            },
        )
        if response.is_error:
            raise JudgeError(f"Judge API error: {response.status_code} {response.text[:200]}")
        try:
            data = response.json()
            return data["choices"][0]["message"]["content"] or "{}"
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise JudgeError(f"Failed to parse judge response: {response.text[:200]}") from exc

    async def _ask_anthropic(
        self,
        client: httpx.AsyncClient,
        backend: JudgeBackend,
        system_prompt: str,
        user_prompt: str,
    ) -> str:
        response = await client.post(
            ANTHROPIC_MESSAGES_URL,
            headers={
                "x-api-key": backend.api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "Content-Type": "application/json",
            },
            json={
                "model": backend.model,
                "max_tokens": JUDGE_MAX_TOKENS,
                "temperature": 0,
                "system": system_prompt + JSON_ONLY_SUFFIX,
                "messages": [{"role": "user", "content": user_prompt}],
            },
        )
        if response.is_error:
            raise JudgeError(
                f"Judge API error (Anthropic): {response.status_code} {response.text[:200]}"
            )
        try:
            data = response.json()
            blocks = data.get("content") or []
        except (ValueError, AttributeError) as exc:
            raise JudgeError(f"Failed to parse judge response: {response.text[:200]}") from exc
        return "".join(block.get("text", "") for block in blocks if block.get("type") == "text")

    async def _judge(
        self, type_name: str, system_prompt: str, user_prompt: str
    ) -> AssertionResult:
        verdict = await self.ask(system_prompt, user_prompt)
        outcome = "passed" if verdict.passed else "failed"
        return AssertionResult(passed=verdict.passed, message=f"{type_name} {outcome}: {verdict.reasoning}")

    async def assert_llm_judge(self, response: ChatResponse, assertion: Assertion) -> AssertionResult:
        criterion = str(assertion.value or "")
        if not criterion:
            return AssertionResult(
                passed=False,
                message="llm_judge requires a 'value' field with the evaluation criterion",
            )
        user_prompt = f"## Criterion\n{criterion}\n\n## Agent Response\n{response.content}"
        return await self._judge("llm_judge", LLM_JUDGE_PROMPT, user_prompt)

    async def assert_semantic_similarity(
        self, response: ChatResponse, assertion: Assertion
    ) -> AssertionResult:
        reference = str(assertion.value or "")
        if not reference:
            return AssertionResult(
                passed=False,
                message="semantic_similarity requires a 'value' field with the reference text",
            )
        user_prompt = f"## Reference (expected meaning)\n{reference}\n\n## Actual Response\n{response.content}"
        return await self._judge("semantic_similarity", SEMANTIC_SIMILARITY_PROMPT, user_prompt)

    async def assert_sentiment(self, response: ChatResponse, assertion: Assertion) -> AssertionResult:
        expected_tone = str(assertion.value or "")
        if not expected_tone:
            return AssertionResult(
                passed=False,
                message="sentiment requires a 'value' field with the expected tone",
            )
        user_prompt = f"## Expected Tone\n{expected_tone}\n\n## Text to Evaluate\n{response.content}"
        return await self._judge("sentiment", SENTIMENT_PROMPT, user_prompt)
