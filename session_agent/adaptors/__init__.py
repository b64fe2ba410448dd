"""Model adaptors for session-agent.

This module provides streaming implementations of ModelAdaptor for LLM providers.
"""

from session_agent.adaptors.openai import OpenAIAdaptor

__all__ = ["OpenAIAdaptor"]

# Conditional imports for optional SDK-based adaptors
try:
    from session_agent.adaptors.anthropic import AnthropicAdaptor

    __all__.append("AnthropicAdaptor")
except ImportError:
    pass
