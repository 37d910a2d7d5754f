"""GitHub App adapter (origin-system calls)."""

from intelbot.adapters.github.client import GitHubAppClient, InstallationClient

__all__ = ["GitHubAppClient", "InstallationClient"]
