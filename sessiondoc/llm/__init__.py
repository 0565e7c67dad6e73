"""Completion service runner adapters."""

from .runner import LLMError, LLMRunner, LLMTimeoutError

__all__ = ["LLMError", "LLMRunner", "LLMTimeoutError"]
