"""Per-tracker adapters: payload normalization and change intents"""
from syncbridge.services.adapters.github import GitHubAdapter
from syncbridge.services.adapters.linear import LinearAdapter, generate_linear_uuid

__all__ = ["GitHubAdapter", "LinearAdapter", "generate_linear_uuid"]
