"""AI client, orchestration core and sub-investigations."""

from .client import AIClient, ClientSettings

__all__ = ["AIClient", "ClientSettings"]
