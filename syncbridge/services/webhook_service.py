"""Inbound webhook handling for both trackers"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from syncbridge.config import settings
from syncbridge.errors import ConfigurationError, PropagationError, SyncError
from syncbridge.models import Sync
from syncbridge.models.sync_log import SyncSource, SyncStatus
from syncbridge.security import verify_github_signature, verify_linear_origin
from syncbridge.services.adapters import GitHubAdapter, LinearAdapter
from syncbridge.services.content import ContentTransformer
from syncbridge.services.engine import ReconciliationEngine, SyncContext
from syncbridge.services.events import DeliveryResult, EventIgnored, IssueCreated, Side, SyncEvent
from syncbridge.services.github_client import GitHubClient
from syncbridge.services.identity import IdentityMapper
from syncbridge.services.linear_client import LinearClient
from syncbridge.services.loop_guard import BotIdentity
from syncbridge.services.store import CorrespondenceStore
from syncbridge.services.vault import CredentialVault, vault as default_vault

logger = logging.getLogger(__name__)


class ClientFactory:
    """Builds per-request API clients from the configured endpoints"""

    def __init__(self, config=settings):
        self.config = config

    def linear(self, api_key: str) -> LinearClient:
        return LinearClient(
            api_key,
            base_url=self.config.linear_api_url,
            timeout=self.config.http_timeout_seconds,
            public_file_expiry_seconds=self.config.linear_public_file_expiry_seconds,
        )

    def github(self, token: str, repo_name: str) -> GitHubClient:
        return GitHubClient(
            token,
            repo_name,
            base_url=self.config.github_api_url,
            timeout=self.config.http_timeout_seconds,
        )


def delivery_outcome(result: DeliveryResult) -> SyncStatus:
    """FAILED if anything failed, SUCCESS if anything was written, SKIPPED otherwise."""
    if any(o.failed for o in result.outcomes):
        return SyncStatus.FAILED
    if any(not o.skipped for o in result.outcomes):
        return SyncStatus.SUCCESS
    return SyncStatus.SKIPPED


def raise_for_result(result: DeliveryResult):
    """Turn a delivery into an error when its required work did not happen.

    That is: the counterpart item could not be created, or every event failed.
    Partial failures of independent fields still answer 200.
    """
    failures = [o for o in result.outcomes if o.failed]
    if not failures:
        return
    creation_failed = any(isinstance(o.event, IssueCreated) for o in failures)
    if not creation_failed and len(failures) < len(result.outcomes):
        return
    first = failures[0].error
    status_code = first.status_code if isinstance(first, SyncError) else PropagationError.status_code
    raise PropagationError(result.message, status_code=status_code)


class WebhookService:
    """Verify, route and reconcile inbound webhook deliveries.

    One instance can serve many requests; nothing is cached between them.
    """

    def __init__(
        self,
        store: CorrespondenceStore,
        vault: CredentialVault = default_vault,
        config=settings,
        clients: Optional[ClientFactory] = None,
    ):
        self.store = store
        self.vault = vault
        self.config = config
        self.clients = clients or ClientFactory(config)
        self.engine = ReconciliationEngine(store)

    # Linear

    async def handle_linear(self, payload: Dict[str, Any], origin_ip: Optional[str]) -> str:
        verify_linear_origin(origin_ip, self.config.linear_ip_allowlist)

        event_label = f"{payload.get('type')}.{payload.get('action')}"
        owner_id = LinearAdapter.owner_id(payload)
        syncs = await self.store.find_syncs_for_linear_user(owner_id) if owner_id else []
        if not syncs:
            return await self._benign(SyncSource.LINEAR, event_label, "Could not find Linear user in syncs.")

        sync = await self._pick_linear_sync(payload, syncs)
        if sync is None:
            return await self._benign(SyncSource.LINEAR, event_label, "Could not find a sync for this Linear team.")

        return await self._run(
            sync,
            Side.LINEAR,
            lambda ctx: ctx.linear.normalize(payload),
            anonymous=False,
            event_label=event_label,
        )

    async def _pick_linear_sync(self, payload: Dict[str, Any], syncs: List[Sync]) -> Optional[Sync]:
        data = payload.get("data") or {}
        team_id = data.get("teamId") or (data.get("team") or {}).get("id")
        if team_id:
            return next((s for s in syncs if s.linear_team_id == team_id), None)

        # Comments carry no team; follow the ticket's correspondence row instead
        issue_id = data.get("issueId") or (data.get("issue") or {}).get("id")
        if issue_id:
            for sync in syncs:
                if await self.store.find_synced_issue_by_linear(issue_id, sync.linear_team_id):
                    return sync
        return syncs[0]

    # GitHub

    async def handle_github(
        self,
        event_name: str,
        payload: Dict[str, Any],
        raw_body: bytes,
        signature: Optional[str],
    ) -> str:
        event_label = f"{event_name}.{payload.get('action')}" if payload.get("action") else event_name
        repo_id = (payload.get("repository") or {}).get("id")
        repo = await self.store.get_github_repo(int(repo_id)) if repo_id is not None else None
        if repo is None:
            return await self._benign(SyncSource.GITHUB, event_label, "Could not find repository.")

        verify_github_signature(raw_body, repo.webhook_secret, signature)

        if event_name == "ping":
            return "Webhook received."

        sender = payload.get("sender") or {}
        sync = None
        if sender.get("id") is not None:
            sync = await self.store.find_sync_for_github_user(repo.repo_id, int(sender["id"]))
        anonymous = sync is None
        if anonymous:
            if not self.config.linear_application_admin_key:
                raise ConfigurationError(
                    f"No sync for GitHub user {sender.get('login')} and no Linear application key configured."
                )
            sync = await self.store.find_any_sync_for_repo(repo.repo_id)
            if sync is None:
                return await self._benign(SyncSource.GITHUB, event_label, "Could not find a sync for this repository.")
            logger.info(f"Handling {event_label} from {sender.get('login')} without a sync of their own")

        return await self._run(
            sync,
            Side.GITHUB,
            lambda ctx: ctx.github.normalize(event_name, payload),
            anonymous=anonymous,
            event_label=event_label,
        )

    # Shared

    async def _benign(self, source: SyncSource, event_label: str, message: str, sync_id: Optional[int] = None) -> str:
        logger.info(message)
        await self.store.log(source=source, status=SyncStatus.SKIPPED, message=message, event=event_label, sync_id=sync_id)
        return message

    def _bot_identity(self, sync: Sync) -> BotIdentity:
        return BotIdentity(
            linear_user_id=sync.linear_bot_user_id or self.config.linear_bot_user_id,
            github_login=sync.github_bot_login or self.config.github_bot_login,
        )

    async def _run(
        self,
        sync: Sync,
        side: Side,
        normalize: Callable[[SyncContext], List[SyncEvent]],
        *,
        anonymous: bool,
        event_label: str,
    ) -> str:
        source = SyncSource(side.value)
        linear_key = self.vault.get_credential(Side.LINEAR, sync, anonymous=anonymous)
        github_key = self.vault.get_credential(Side.GITHUB, sync)

        async with self.clients.linear(linear_key) as linear_client, self.clients.github(
            github_key, sync.github_repo.repo_name
        ) as github_client:
            identity = IdentityMapper(self.store, linear_client, github_client, sync.linear_team)
            ctx = SyncContext(
                sync=sync,
                team=sync.linear_team,
                repo=sync.github_repo,
                linear=LinearAdapter(linear_client, sync.linear_team),
                github=GitHubAdapter(github_client, sync.github_repo, self.config.github_trigger_label),
                identity=identity,
                content=ContentTransformer(identity),
                bot=self._bot_identity(sync),
                anonymous=anonymous,
            )

            try:
                events = normalize(ctx)
            except EventIgnored as e:
                return await self._benign(source, event_label, e.reason, sync_id=sync.id)

            if not anonymous:
                try:
                    await identity.ensure_sync_owner(sync)
                except Exception as e:
                    logger.warning(f"Could not record identities for sync {sync.id}: {e}")

            result = await self.engine.handle(events, ctx)

        item = events[0].item
        await self.store.log(
            source=source,
            status=delivery_outcome(result),
            message=result.message,
            event=event_label,
            sync_id=sync.id,
            linear_issue_id=item.id if side is Side.LINEAR else None,
            github_issue_number=item.number if side is Side.GITHUB else None,
        )
        raise_for_result(result)
        return result.message
