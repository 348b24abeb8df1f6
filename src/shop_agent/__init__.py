"""Shopping assistant package."""

from .config import AgentConfig, LookupConfig, RetryPolicy

__all__ = ["AgentConfig", "LookupConfig", "RetryPolicy"]
