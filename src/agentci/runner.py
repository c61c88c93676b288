from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from agentci.assertions import AssertionRegistry, create_default_registry
from agentci.config import Settings
from agentci.judge import Judge
from agentci.models import AssertionOutcome, ChatRequest, RunResult, TestResult
from agentci.providers import Provider, create_provider
from agentci.suite import SuiteConfig, TestCase

logger = logging.getLogger(__name__)


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0


async def run_test(
    test: TestCase,
    suite: SuiteConfig,
    *,
    verbose: bool = False,
    provider: Provider | None = None,
    registry: AssertionRegistry | None = None,
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> TestResult:
    """Run one test case: a single chat call, then every assertion in order."""
    defaults = suite.defaults
    start = time.perf_counter()
    try:
        if provider is None:
            provider = create_provider(
                test.provider or defaults.provider,
                base_url=test.base_url or defaults.base_url,
                headers=test.headers or defaults.headers,
                request_template=test.request_template or defaults.request_template,
                response_path=test.response_path or defaults.response_path,
                settings=settings,
                transport=transport,
            )
        request = ChatRequest(
            model=test.model or defaults.model,
            system=test.system,
            prompt=test.prompt,
            temperature=_first(test.temperature, defaults.temperature, 0.0),
            max_tokens=_first(test.max_tokens, defaults.max_tokens, 500),
            tools=test.tools,
        )
        logger.debug("Running %r with %s/%s", test.name, provider.name, request.model)
        response = await provider.chat(request)
    except Exception as exc:  # noqa: BLE001
        logger.debug("Test %r errored: %s", test.name, exc)
        return TestResult(
            name=test.name,
            passed=False,
            duration=_elapsed_ms(start),
            assertions=[],
            error=str(exc) or type(exc).__name__,
        )
    duration = _elapsed_ms(start)

    if registry is None:
        registry = create_default_registry(Judge(settings=settings, transport=transport))
    outcomes = []
    for assertion in test.assertions:
        result = await registry.evaluate(response, assertion)
        outcomes.append(AssertionOutcome(assertion=assertion, result=result))

    return TestResult(
        name=test.name,
        passed=all(outcome.result.passed for outcome in outcomes),
        duration=duration,
        assertions=outcomes,
        response=response if verbose else None,
    )


def _first(*values: Any) -> Any:
    return next(value for value in values if value is not None)


async def run_suite(
    suite: SuiteConfig,
    *,
    verbose: bool = False,
    provider: Provider | None = None,
    registry: AssertionRegistry | None = None,
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> RunResult:
    """Run every test case in declaration order, one at a time."""
    start = time.perf_counter()
    if registry is None:
        registry = create_default_registry(Judge(settings=settings, transport=transport))

    results: list[TestResult] = []
    for test in suite.tests:
        result = await run_test(
            test,
            suite,
            verbose=verbose,
            provider=provider,
            registry=registry,
            settings=settings,
            transport=transport,
        )
        results.append(result)

    passed = sum(1 for r in results if r.passed)
    return RunResult(
        results=results,
        total=len(results),
        passed=passed,
        failed=len(results) - passed,
        duration=_elapsed_ms(start),
    )
