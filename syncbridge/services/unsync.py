"""Removing a sync and the webhooks it installed"""

import logging
from typing import Any, Dict, Optional

from syncbridge.config import settings
from syncbridge.models import Sync
from syncbridge.services.events import Side
from syncbridge.services.store import CorrespondenceStore
from syncbridge.services.vault import CredentialVault, vault as default_vault
from syncbridge.services.webhook_service import ClientFactory

logger = logging.getLogger(__name__)


def _points_here(url: Optional[str], public_url: Optional[str]) -> bool:
    if not url or not public_url:
        return False
    return url.rstrip("/").startswith(public_url.rstrip("/"))


async def unsync(
    sync: Sync,
    store: CorrespondenceStore,
    vault: CredentialVault = default_vault,
    clients: Optional[ClientFactory] = None,
    config=settings,
) -> Dict[str, Any]:
    """Delete ``sync``; drop webhooks nobody else needs.

    Webhook removal is best-effort: failures are reported in the result, the
    sync is deleted regardless. Webhooks are only recognised as ours when they
    point at ``PUBLIC_URL``.
    """
    clients = clients or ClientFactory(config)
    linear_key = vault.get_credential(Side.LINEAR, sync)
    github_key = vault.get_credential(Side.GITHUB, sync)
    repo_name = sync.github_repo.repo_name

    result: Dict[str, Any] = await store.delete_sync(sync)
    result["webhooks_removed"] = []
    result["webhook_errors"] = []

    if await store.count_syncs_for_team(sync.linear_team_id) == 0:
        try:
            async with clients.linear(linear_key) as linear:
                for hook in await linear.list_webhooks():
                    team_id = (hook.get("team") or {}).get("id")
                    if team_id == sync.linear_team_id and _points_here(hook.get("url"), config.public_url):
                        await linear.delete_webhook(hook["id"])
                        result["webhooks_removed"].append(f"linear:{hook['id']}")
        except Exception as e:
            logger.warning(f"Could not remove Linear webhook for team {sync.linear_team_id}: {e}")
            result["webhook_errors"].append(f"linear: {e}")

    if await store.count_syncs_for_repo(sync.github_repo_id) == 0:
        try:
            async with clients.github(github_key, repo_name) as github:
                for hook in await github.list_hooks():
                    if _points_here((hook.get("config") or {}).get("url"), config.public_url):
                        await github.delete_hook(hook["id"])
                        result["webhooks_removed"].append(f"github:{hook['id']}")
        except Exception as e:
            logger.warning(f"Could not remove GitHub webhook for {repo_name}: {e}")
            result["webhook_errors"].append(f"github: {e}")

    return result
