"""Per-event webhook handlers.

Every handler receives the decoded payload. Side effects (comments, labels,
integration calls) are isolated: a failing side effect is logged and the
handler moves on, so one failure never masks the others.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable

from intelbot.adapters.github import GitHubAppClient, InstallationClient
from intelbot.services.gas import GasEstimationService
from intelbot.services.health import HealthAggregator
from intelbot.services.network import NetworkMonitoringService
from intelbot.webhooks.events import (
    BotCommand,
    CommandRequest,
    EventType,
    find_contract_files,
    is_contract_file,
    mentions_crypto,
    parse_bot_commands,
)

logger = logging.getLogger(__name__)

EventHandler = Callable[[dict[str, Any]], Awaitable[None]]

AUTO_LABELS = ["crypto", "blockchain"]
AVAILABLE_COMMANDS = ", ".join(c.value for c in BotCommand if c is not BotCommand.UNKNOWN)

PR_ANALYSIS_COMMENT = """## 🔍 Crypto Intel Bot Analysis

I detected smart contract changes in this PR:
{files}

**Automated Analysis:**
- ⛽ Gas estimation analysis in progress...
- 🌐 Network deployment monitoring active
- 📊 DeFi protocol integration checks running

Results will be updated here once analysis is complete.

---
*This is an automated message from Crypto Intel Bot*"""


def _repo_coordinates(payload: dict[str, Any]) -> tuple[str, str]:
    repository = payload["repository"]
    return repository["owner"]["login"], repository["name"]


class EventHandlers:
    """Handler table for every recognized ``EventType``.

    Args:
        gas: Gas estimation service (repository analysis).
        network: Network monitoring service (deployments, monitored repos).
        health: Aggregator backing the ``status`` command.
        github: Mints installation-scoped clients for replies and labels.
        bot_mention: Mention token that prefixes bot commands.
    """

    def __init__(
        self,
        *,
        gas: GasEstimationService,
        network: NetworkMonitoringService,
        health: HealthAggregator,
        github: GitHubAppClient,
        bot_mention: str,
    ) -> None:
        self._gas = gas
        self._network = network
        self._health = health
        self._github = github
        self.bot_mention = bot_mention

        self.routes: dict[EventType, EventHandler] = {
            EventType.PUSH: self.handle_push,
            EventType.PULL_REQUEST: self.handle_pull_request,
            EventType.REPOSITORY: self.handle_repository,
            EventType.INSTALLATION: self.handle_installation,
            EventType.INSTALLATION_REPOSITORIES: self.handle_installation_repositories,
            EventType.ISSUES: self.handle_issues,
            EventType.ISSUE_COMMENT: self.handle_issue_comment,
        }
        missing = set(EventType) - {EventType.UNRECOGNIZED} - set(self.routes)
        if missing:
            raise RuntimeError(f"No handler registered for: {sorted(m.value for m in missing)}")

        self._commands: dict[BotCommand, Callable[[str, str], Awaitable[str]]] = {
            BotCommand.ANALYZE: self._command_analyze,
            BotCommand.MONITOR: self._command_monitor,
            BotCommand.STATUS: self._command_status,
        }

    def route(self, event_type: EventType) -> EventHandler | None:
        return self.routes.get(event_type)

    async def _side_effect(self, action: str, operation: Awaitable[Any], **fields: Any) -> bool:
        try:
            await operation
        except Exception as exc:
            logger.error(
                "webhook.side_effect_failed",
                extra={"action": action, "error_type": type(exc).__name__, "error": str(exc), **fields},
            )
            return False
        return True

    async def _installation(self, payload: dict[str, Any], **fields: Any) -> InstallationClient | None:
        """Mint the installation client, or log and return ``None`` when GitHub refuses."""

        try:
            return await self._github.installation(payload["installation"]["id"])
        except Exception as exc:
            logger.error(
                "webhook.side_effect_failed",
                extra={"action": "installation_token", "error_type": type(exc).__name__, "error": str(exc), **fields},
            )
            return None

    async def handle_push(self, payload: dict[str, Any]) -> None:
        owner, repo = _repo_coordinates(payload)
        commits = payload.get("commits") or []
        logger.info(
            "github.push",
            extra={
                "owner": owner,
                "repo": repo,
                "pusher": (payload.get("pusher") or {}).get("name"),
                "commits_count": len(commits),
                "branch": payload.get("ref"),
            },
        )

        contract_files = find_contract_files(commits)
        if not contract_files:
            return

        logger.info(
            "github.contract_files_detected",
            extra={"owner": owner, "repo": repo, "files": contract_files},
        )
        await self._side_effect("gas_analysis", self._gas.analyze_repository(owner, repo), owner=owner, repo=repo)
        await self._side_effect(
            "deployment_update", self._network.update_deployments(owner, repo), owner=owner, repo=repo
        )

    async def handle_pull_request(self, payload: dict[str, Any]) -> None:
        owner, repo = _repo_coordinates(payload)
        action = payload.get("action")
        pull_request = payload["pull_request"]
        pr_number = pull_request["number"]
        logger.info(
            "github.pull_request",
            extra={"owner": owner, "repo": repo, "action": action, "pr_number": pr_number},
        )

        if action not in ("opened", "synchronize"):
            return

        github = await self._installation(payload, owner=owner, repo=repo, pr_number=pr_number)
        if github is None:
            return
        try:
            files = await github.list_pull_files(owner, repo, pr_number)
        except Exception as exc:
            logger.error(
                "github.pr_analysis_failed",
                extra={"owner": owner, "repo": repo, "pr_number": pr_number, "error": str(exc)},
            )
            return

        contract_files = [f["filename"] for f in files if is_contract_file(f.get("filename", ""))]
        if contract_files:
            body = PR_ANALYSIS_COMMENT.format(files="\n".join(f"- `{name}`" for name in contract_files))
            await self._side_effect(
                "pr_comment",
                github.create_comment(owner, repo, pr_number, body),
                owner=owner,
                repo=repo,
                pr_number=pr_number,
            )

    async def handle_repository(self, payload: dict[str, Any]) -> None:
        owner, repo = _repo_coordinates(payload)
        action = payload.get("action")
        logger.info("github.repository", extra={"owner": owner, "repo": repo, "action": action})

        if action == "created":
            await self._side_effect(
                "repository_init", self._network.initialize_repository(owner, repo), owner=owner, repo=repo
            )

    async def handle_installation(self, payload: dict[str, Any]) -> None:
        installation = payload["installation"]
        account = installation["account"]["login"]
        logger.info(
            "github.installation",
            extra={"account": account, "action": payload.get("action"), "installation_id": installation["id"]},
        )
        if payload.get("action") == "created":
            logger.info(
                "github.installation_created",
                extra={"account": account, "repository_selection": installation.get("repository_selection")},
            )

    async def handle_installation_repositories(self, payload: dict[str, Any]) -> None:
        installation = payload["installation"]
        added = payload.get("repositories_added") or []
        removed = payload.get("repositories_removed") or []
        logger.info(
            "github.installation_repositories",
            extra={
                "account": installation["account"]["login"],
                "action": payload.get("action"),
                "added": len(added),
                "removed": len(removed),
            },
        )

        for repository in added:
            # Installation payloads carry full_name but not always an owner object
            owner, _, repo = repository["full_name"].partition("/")
            await self._side_effect(
                "repository_init", self._network.initialize_repository(owner, repo), owner=owner, repo=repo
            )

    async def handle_issues(self, payload: dict[str, Any]) -> None:
        owner, repo = _repo_coordinates(payload)
        issue = payload["issue"]
        action = payload.get("action")
        logger.info(
            "github.issues",
            extra={"owner": owner, "repo": repo, "action": action, "issue_number": issue["number"]},
        )

        if action != "opened" or not mentions_crypto(issue.get("title"), issue.get("body")):
            return

        async def label() -> None:
            github = await self._github.installation(payload["installation"]["id"])
            await github.add_labels(owner, repo, issue["number"], list(AUTO_LABELS))

        if await self._side_effect("auto_label", label(), owner=owner, repo=repo, issue_number=issue["number"]):
            logger.info(
                "github.issue_auto_labeled",
                extra={"owner": owner, "repo": repo, "issue_number": issue["number"]},
            )

    async def handle_issue_comment(self, payload: dict[str, Any]) -> None:
        comment_body = (payload.get("comment") or {}).get("body") or ""
        if payload.get("action") != "created" or self.bot_mention not in comment_body:
            return

        commands = parse_bot_commands(comment_body, self.bot_mention)
        if not commands:
            return

        owner, repo = _repo_coordinates(payload)
        issue_number = payload["issue"]["number"]
        github = await self._installation(payload, owner=owner, repo=repo, issue_number=issue_number)
        if github is None:
            return
        for request in commands:
            await self.execute_command(request, github, owner, repo, issue_number)

    async def execute_command(
        self,
        request: CommandRequest,
        github: InstallationClient,
        owner: str,
        repo: str,
        issue_number: int,
    ) -> str:
        """Run one bot command and reply with its result; returns the reply text."""

        logger.info(
            "github.bot_command",
            extra={"owner": owner, "repo": repo, "command": request.word, "command_args": request.args},
        )
        handler = self._commands.get(request.command)
        try:
            if handler is None:
                reply = f"❓ Unknown command: `{request.word}`. Available commands: {AVAILABLE_COMMANDS}"
            else:
                reply = await handler(owner, repo)
        except Exception as exc:
            logger.error(
                "github.bot_command_failed",
                extra={"command": request.word, "error_type": type(exc).__name__, "error": str(exc)},
            )
            reply = f"❌ Command failed: {exc}"

        await self._side_effect(
            "command_reply",
            github.create_comment(owner, repo, issue_number, reply),
            owner=owner,
            repo=repo,
            issue_number=issue_number,
        )
        return reply

    async def _command_analyze(self, owner: str, repo: str) -> str:
        await self._gas.analyze_repository(owner, repo)
        return "✅ Gas analysis started for this repository."

    async def _command_monitor(self, owner: str, repo: str) -> str:
        await self._network.update_deployments(owner, repo)
        return "✅ Network monitoring activated for this repository."

    async def _command_status(self, owner: str, repo: str) -> str:
        status = await self._health.overall_status()
        return f"📊 **Current Status:**\n{json.dumps(status, indent=2, default=str)}"
