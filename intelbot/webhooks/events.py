"""Closed vocabularies for inbound events and bot commands."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

CONTRACT_EXTENSIONS = (".sol", ".vy")

CRYPTO_KEYWORDS = (
    "smart contract",
    "solidity",
    "defi",
    "ethereum",
    "polygon",
    "gas",
    "wei",
    "gwei",
    "blockchain",
    "web3",
    "dapp",
    "nft",
    "token",
    "crypto",
    "uniswap",
    "aave",
    "compound",
)


class EventType(str, Enum):
    PUSH = "push"
    PULL_REQUEST = "pull_request"
    REPOSITORY = "repository"
    INSTALLATION = "installation"
    INSTALLATION_REPOSITORIES = "installation_repositories"
    ISSUES = "issues"
    ISSUE_COMMENT = "issue_comment"
    UNRECOGNIZED = "unrecognized"

    @classmethod
    def parse(cls, value: str | None) -> EventType:
        """Map a raw X-GitHub-Event header onto the enumeration."""

        try:
            return cls(value)
        except ValueError:
            return cls.UNRECOGNIZED


class BotCommand(str, Enum):
    ANALYZE = "analyze"
    MONITOR = "monitor"
    STATUS = "status"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, word: str) -> BotCommand:
        try:
            command = cls(word)
        except ValueError:
            return cls.UNKNOWN
        return cls.UNKNOWN if command is cls.UNKNOWN else command


@dataclass(frozen=True)
class WebhookEvent:
    """One inbound delivery, discarded once handled."""

    type: str
    raw_body: bytes
    signature_header: str | None
    delivery_id: str | None = None

    @property
    def kind(self) -> EventType:
        return EventType.parse(self.type)


@dataclass(frozen=True)
class CommandRequest:
    command: BotCommand
    word: str
    args: list[str] = field(default_factory=list)


def parse_bot_commands(text: str, mention: str) -> list[CommandRequest]:
    """Extract ``<mention> <command> [args...]`` occurrences, one per line."""

    pattern = re.compile(re.escape(mention) + r"\s+(\w+)(?:\s+(.+))?")
    commands = []
    for line in text.splitlines():
        if mention not in line:
            continue
        match = pattern.search(line)
        if match:
            word, rest = match.group(1), match.group(2)
            commands.append(
                CommandRequest(command=BotCommand.parse(word), word=word, args=rest.split() if rest else [])
            )
    return commands


def is_contract_file(filename: str) -> bool:
    return filename.endswith(CONTRACT_EXTENSIONS) or "contract" in filename.lower()


def find_contract_files(commits: Iterable[dict[str, Any]]) -> list[str]:
    """Contract-looking paths added or modified across ``commits`` (deduplicated, ordered)."""

    seen: dict[str, None] = {}
    for commit in commits:
        for filename in [*(commit.get("added") or []), *(commit.get("modified") or [])]:
            if is_contract_file(filename):
                seen.setdefault(filename, None)
    return list(seen)


def mentions_crypto(*texts: str | None) -> bool:
    haystack = " ".join(text or "" for text in texts).lower()
    return any(keyword in haystack for keyword in CRYPTO_KEYWORDS)
