"""Periodic maintenance of synced content"""

import logging
from typing import Dict, Optional

from syncbridge.config import settings
from syncbridge.models import Sync
from syncbridge.services.content import ContentContext, ContentTransformer, has_linear_uploads, issue_footer
from syncbridge.services.events import Side
from syncbridge.services.identity import IdentityMapper
from syncbridge.services.loop_guard import has_sync_footer
from syncbridge.services.store import CorrespondenceStore
from syncbridge.services.vault import CredentialVault, vault as default_vault
from syncbridge.services.webhook_service import ClientFactory

logger = logging.getLogger(__name__)


class ImageLinkRefresher:
    """Re-render GitHub bodies that embed signed Linear upload URLs.

    Signed URLs expire, so issues created from Linear are periodically
    rewritten with freshly signed links. Issues that originated on GitHub are
    left alone.
    """

    def __init__(
        self,
        store: CorrespondenceStore,
        vault: CredentialVault = default_vault,
        clients: Optional[ClientFactory] = None,
        config=settings,
    ):
        self.store = store
        self.vault = vault
        self.clients = clients or ClientFactory(config)

    async def run(self) -> Dict[str, int]:
        stats = {"checked": 0, "updated": 0, "failed": 0}
        seen = set()
        for sync in await self.store.list_syncs():
            pair = (sync.linear_team_id, sync.github_repo_id)
            if pair in seen:
                continue
            seen.add(pair)
            try:
                await self._refresh_sync(sync, stats)
            except Exception as e:
                logger.error(f"Image refresh failed for sync {sync.id}: {e}")
                stats["failed"] += 1
        logger.info(f"Image refresh finished: {stats}")
        return stats

    async def _refresh_sync(self, sync: Sync, stats: Dict[str, int]):
        linear_key = self.vault.get_credential(Side.LINEAR, sync)
        github_key = self.vault.get_credential(Side.GITHUB, sync)
        async with self.clients.linear(linear_key) as linear, self.clients.github(
            github_key, sync.github_repo.repo_name
        ) as github:
            content = ContentTransformer(IdentityMapper(self.store, linear, github, sync.linear_team))
            rows = await self.store.list_synced_issues(
                github_repo_id=sync.github_repo_id, linear_team_id=sync.linear_team_id
            )
            for row in rows:
                stats["checked"] += 1
                try:
                    ticket = await linear.get_issue(row.linear_issue_id, public_urls=True)
                    if not ticket or not has_linear_uploads(ticket.get("description")):
                        continue
                    issue = await github.get_issue(row.github_issue_number)
                    if not has_sync_footer(issue.get("body")):
                        continue
                    body = await content.to_counterpart(
                        ticket["description"],
                        Side.LINEAR,
                        ContentContext(footer=issue_footer(ticket.get("identifier"), ticket.get("url"))),
                    )
                    if body != issue.get("body"):
                        await github.update_issue(row.github_issue_number, body=body)
                        stats["updated"] += 1
                except Exception as e:
                    logger.warning(f"Could not refresh images on #{row.github_issue_number}: {e}")
                    stats["failed"] += 1
