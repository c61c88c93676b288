"""Deterministic mock agent used by ``agentci run --demo`` and in tests.

It plays a customer support agent for "Acme Corp" and routes on keywords in
the lowercased prompt. The order of the checks matters: "shipping" contains
"hi", so shipping is tested before the greeting branch.
"""

from __future__ import annotations

from dataclasses import dataclass

from agentci.models import Assertion, ChatRequest, ChatResponse, ToolCall, Usage
from agentci.suite import Defaults, SuiteConfig, TestCase

DEMO_MODEL = "demo-model"

SHIPPING_REPLY = (
    "Standard shipping takes 5-7 business days. Express shipping (2-3 days) is available "
    "for $9.99. You can track your order at acme.com/track with your order number."
)
GREETING_REPLY = (
    "Hello! I'm a customer support agent for Acme Corp. I can help you with orders, "
    "returns, and general questions. How can I assist you today?"
)
REFUND_REPLY = (
    "I understand you'd like a refund. I can process that for you. Our refund policy allows "
    "returns within 30 days of purchase. Could you please provide your order number so I can "
    "look into this for you?"
)
SUPPORT_REPLY = (
    "I'm sorry to hear you're experiencing issues. Let me help troubleshoot. Could you tell me:\n"
    "1. What product are you using?\n"
    "2. What error message are you seeing?\n"
    "3. When did this start happening?\n\n"
    "This will help me diagnose the problem."
)
PRICING_REPLY = (
    "Here are our current plans:\n"
    "- **Basic**: $9/month (1 user, 10GB storage)\n"
    "- **Pro**: $29/month (5 users, 100GB storage)\n"
    "- **Enterprise**: Contact sales for custom pricing\n\n"
    "All plans include a 14-day free trial. Would you like to sign up?"
)
DEFAULT_REPLY = (
    "Thank you for reaching out to Acme Corp support. I'm here to help with any questions "
    "about our products and services. Could you provide more details about what you need "
    "assistance with?"
)

SHIPPING_KEYWORDS = ("ship", "deliver", "tracking")
GREETING_KEYWORDS = ("hello", " hi ", "help")
REFUND_KEYWORDS = ("refund", "return", "money back")
SUPPORT_KEYWORDS = ("broken", "error", "not working", "bug")
PRICING_KEYWORDS = ("price", "cost", "plan")
TOOL_KEYWORDS = ("weather", "search", "look up")


def _reply(content: str, prompt_tokens: int, completion_tokens: int) -> ChatResponse:
    return ChatResponse(
        content=content,
        model=DEMO_MODEL,
        usage=Usage(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
    )


def _mentions(prompt: str, keywords: tuple[str, ...]) -> bool:
    return any(keyword in prompt for keyword in keywords)


@dataclass
class DemoProvider:
    name: str = "demo"

    async def chat(self, request: ChatRequest) -> ChatResponse:
        prompt = request.prompt.lower()

        if _mentions(prompt, SHIPPING_KEYWORDS):
            return _reply(SHIPPING_REPLY, 20, 40)
        if _mentions(prompt, GREETING_KEYWORDS):
            return _reply(GREETING_REPLY, 20, 35)
        if _mentions(prompt, REFUND_KEYWORDS):
            return _reply(REFUND_REPLY, 25, 45)
        if _mentions(prompt, SUPPORT_KEYWORDS):
            return _reply(SUPPORT_REPLY, 30, 50)
        if _mentions(prompt, PRICING_KEYWORDS):
            return _reply(PRICING_REPLY, 20, 55)
        if request.tools and _mentions(prompt, TOOL_KEYWORDS):
            return ChatResponse(
                content="",
                model=DEMO_MODEL,
                tool_calls=[ToolCall(name=request.tools[0].name, arguments={"query": prompt})],
                usage=Usage(prompt_tokens=30, completion_tokens=20),
            )
        return _reply(DEFAULT_REPLY, 15, 35)


DEMO_SUITE = SuiteConfig(
    version=1,
    defaults=Defaults(provider="demo", model=DEMO_MODEL, temperature=0),
    tests=[
        TestCase(
            name="greeting is friendly",
            system="You are a customer support agent.",
            prompt="Hello, I need some help with my order",
            assertions=[
                Assertion(type="contains", value="help"),
                Assertion(type="not_contains", value="error"),
                Assertion(type="regex", pattern=r"\b(hello|hi|welcome)\b"),
            ],
        ),
        TestCase(
            name="refund request is handled",
            prompt="I want a refund for my last purchase",
            assertions=[
                Assertion(type="contains", value="refund"),
                Assertion(type="contains", value="order number"),
                Assertion(type="max_tokens", value=500),
            ],
        ),
        TestCase(
            name="pricing info is accurate",
            prompt="What are your pricing plans?",
            assertions=[
                Assertion(type="contains", value="$"),
                Assertion(type="regex", pattern=r"\d+/month"),
                Assertion(type="contains", value="Basic"),
            ],
        ),
        TestCase(
            name="tech support asks good questions",
            prompt="My account is not working and I keep getting errors",
            assertions=[
                Assertion(type="contains", value="sorry"),
                Assertion(type="regex", pattern="(error|issue|problem)"),
                Assertion(type="not_contains", value="your fault"),
            ],
        ),
        TestCase(
            name="shipping info is provided",
            prompt="How long does shipping take?",
            assertions=[
                Assertion(type="regex", pattern=r"\d+.*days"),
                Assertion(type="contains", value="shipping"),
            ],
        ),
    ],
)
