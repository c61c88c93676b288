from __future__ import annotations


class AgentCIError(Exception):
    """Base class for agentci errors."""


class ConfigError(AgentCIError):
    """Raised when a suite or provider configuration is invalid."""


class ProviderError(AgentCIError):
    """Raised when a chat backend rejects a request or cannot be built."""


class JudgeError(AgentCIError):
    """Raised when no judge backend can be selected or its reply is unusable."""
