"""In-memory stand-ins for the tracker clients and a throwaway database"""
import copy
import itertools
import os
import tempfile

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from syncbridge.models import GitHubRepo, LinearTeam
from syncbridge.models.base import init_db
from syncbridge.services.store import CorrespondenceStore

TEAM_ID = "team-1"
TEAM_KEY = "ENG"
PUBLIC_LABEL_ID = "label-public"
TODO_STATE_ID = "state-todo"
DONE_STATE_ID = "state-done"
CANCELED_STATE_ID = "state-canceled"
IN_PROGRESS_STATE_ID = "state-in-progress"

REPO_ID = 4242
REPO_NAME = "acme/widgets"
WEBHOOK_SECRET = "s3cret"


def make_team(**overrides) -> LinearTeam:
    fields = dict(
        team_id=TEAM_ID,
        team_name="Engineering",
        team_key=TEAM_KEY,
        public_label_id=PUBLIC_LABEL_ID,
        todo_state_id=TODO_STATE_ID,
        done_state_id=DONE_STATE_ID,
        canceled_state_id=CANCELED_STATE_ID,
    )
    fields.update(overrides)
    return LinearTeam(**fields)


def make_repo(**overrides) -> GitHubRepo:
    fields = dict(repo_id=REPO_ID, repo_name=REPO_NAME, webhook_secret=WEBHOOK_SECRET)
    fields.update(overrides)
    return GitHubRepo(**fields)


class TempDatabase:
    """A file-backed SQLite database that lives for one test"""

    def __init__(self):
        self._dir = tempfile.TemporaryDirectory()
        path = os.path.join(self._dir.name, "test.db")
        self.engine = create_async_engine(f"sqlite+aiosqlite:///{path}", poolclass=NullPool)
        self.session_factory = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)
        self.store = CorrespondenceStore(self.session_factory)

    async def start(self) -> CorrespondenceStore:
        await init_db(self.engine)
        return self.store

    async def stop(self):
        await self.engine.dispose()
        self._dir.cleanup()


class _AsyncContext:
    async def aclose(self):
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()


class FakeGitHubClient(_AsyncContext):
    """Just enough of the GitHub REST API, kept in dictionaries"""

    def __init__(self, repo_name: str = REPO_NAME):
        self.repo_name = repo_name
        self.issues = {}
        self.comments = {}
        self.labels = {}
        self.milestones = []
        self.hooks = []
        self.users = {}
        self.authenticated = {"id": 1, "login": "octocat"}
        self.calls = []
        self._numbers = itertools.count(1)
        self._ids = itertools.count(9000)

    # Test helpers

    def add_issue(self, number=None, title="", body="", labels=(), state="open", state_reason=None, assignees=()):
        number = number or next(self._numbers)
        issue = {
            "id": next(self._ids),
            "number": number,
            "title": title,
            "body": body,
            "html_url": f"https://github.com/{self.repo_name}/issues/{number}",
            "labels": [{"name": name} for name in labels],
            "state": state,
            "state_reason": state_reason,
            "assignees": [{"login": login} for login in assignees],
            "milestone": None,
        }
        self.issues[number] = issue
        self.comments.setdefault(number, [])
        return issue

    def label_names(self, number):
        return [label["name"] for label in self.issues[number]["labels"]]

    def writes(self):
        return [call for call in self.calls if not call[0].startswith(("get_", "list_"))]

    # Issues

    async def get_issue(self, number):
        self.calls.append(("get_issue", number))
        return copy.deepcopy(self.issues[number])

    async def create_issue(self, title, body, *, assignees=None, labels=None):
        self.calls.append(("create_issue", title))
        issue = self.add_issue(title=title, body=body, labels=labels or (), assignees=assignees or ())
        return copy.deepcopy(issue)

    async def update_issue(self, number, **fields):
        self.calls.append(("update_issue", number, fields))
        issue = self.issues[number]
        for key, value in fields.items():
            if key == "milestone":
                issue["milestone"] = next((m for m in self.milestones if m["number"] == value), None)
            else:
                issue[key] = value
        if fields.get("state") == "open":
            issue["state_reason"] = None
        return copy.deepcopy(issue)

    # Comments

    async def list_issue_comments(self, number):
        self.calls.append(("list_issue_comments", number))
        return copy.deepcopy(self.comments.get(number, []))

    async def create_comment(self, number, body):
        self.calls.append(("create_comment", number, body))
        comment_id = next(self._ids)
        comment = {
            "id": comment_id,
            "body": body,
            "html_url": f"https://github.com/{self.repo_name}/issues/{number}#issuecomment-{comment_id}",
            "user": dict(self.authenticated),
        }
        self.comments.setdefault(number, []).append(comment)
        return copy.deepcopy(comment)

    async def update_comment(self, comment_id, body):
        self.calls.append(("update_comment", comment_id, body))
        for comments in self.comments.values():
            for comment in comments:
                if comment["id"] == comment_id:
                    comment["body"] = body
                    return copy.deepcopy(comment)
        raise KeyError(comment_id)

    # Labels

    async def get_label(self, name):
        self.calls.append(("get_label", name))
        return copy.deepcopy(self.labels.get(name.lower()))

    async def create_label(self, name, color=None, description=""):
        self.calls.append(("create_label", name))
        label = self.labels.setdefault(name.lower(), {"name": name, "color": color or "888888"})
        return copy.deepcopy(label)

    async def list_issue_labels(self, number):
        self.calls.append(("list_issue_labels", number))
        return self.label_names(number)

    async def add_labels(self, number, names):
        self.calls.append(("add_labels", number, list(names)))
        current = self.issues[number]["labels"]
        for name in names:
            if name.lower() not in {label["name"].lower() for label in current}:
                current.append({"name": name})
        return self.label_names(number)

    async def remove_label(self, number, name):
        self.calls.append(("remove_label", number, name))
        current = self.issues[number]["labels"]
        remaining = [label for label in current if label["name"].lower() != name.lower()]
        self.issues[number]["labels"] = remaining
        return len(remaining) != len(current)

    # Assignees

    async def add_assignees(self, number, logins):
        self.calls.append(("add_assignees", number, list(logins)))
        self.issues[number]["assignees"].extend({"login": login} for login in logins)
        return copy.deepcopy(self.issues[number])

    async def remove_assignees(self, number, logins):
        self.calls.append(("remove_assignees", number, list(logins)))
        drop = {login.lower() for login in logins}
        self.issues[number]["assignees"] = [
            a for a in self.issues[number]["assignees"] if a["login"].lower() not in drop
        ]
        return copy.deepcopy(self.issues[number])

    # Milestones

    async def list_milestones(self):
        return copy.deepcopy(self.milestones)

    async def create_milestone(self, title, *, description=None, state="open", due_on=None):
        self.calls.append(("create_milestone", title))
        for milestone in self.milestones:
            if milestone["title"] == title:
                return copy.deepcopy(milestone)
        milestone = {
            "number": len(self.milestones) + 1,
            "title": title,
            "description": description,
            "state": state,
            "due_on": due_on,
        }
        self.milestones.append(milestone)
        return copy.deepcopy(milestone)

    async def set_issue_milestone(self, number, milestone_number):
        return await self.update_issue(number, milestone=milestone_number)

    # Users

    async def get_authenticated_user(self):
        return dict(self.authenticated)

    async def get_user(self, user_id):
        return copy.deepcopy(self.users.get(int(user_id)))

    # Webhooks

    async def list_hooks(self):
        return copy.deepcopy(self.hooks)

    async def delete_hook(self, hook_id):
        self.calls.append(("delete_hook", hook_id))
        self.hooks = [hook for hook in self.hooks if hook["id"] != hook_id]


class FakeLinearClient(_AsyncContext):
    """Just enough of the Linear GraphQL API, kept in dictionaries"""

    def __init__(self, team_id: str = TEAM_ID, team_key: str = TEAM_KEY):
        self.team_id = team_id
        self.team_key = team_key
        self.issues = {}
        self.labels = {PUBLIC_LABEL_ID: {"id": PUBLIC_LABEL_ID, "name": "Public", "color": "#000000"}}
        self.comments = {}
        self.cycles = {}
        self.projects = {}
        self.attachments = []
        self.users = {}
        self.viewer = {"id": "linear-viewer", "name": "Viewer", "displayName": "viewer"}
        self.webhooks = []
        self.calls = []
        # Set to swap in signed image URLs on public_urls reads
        self.public_descriptions = {}
        self._numbers = itertools.count(1)
        self._ids = itertools.count(1)

    # Test helpers

    def add_issue(self, issue_id=None, title="", description="", state_id=TODO_STATE_ID, label_ids=(), **extra):
        number = next(self._numbers)
        issue_id = issue_id or f"issue-{number}"
        issue = {
            "id": issue_id,
            "identifier": f"{self.team_key}-{number}",
            "number": number,
            "title": title,
            "description": description,
            "url": f"https://linear.app/acme/issue/{self.team_key}-{number}",
            "priority": extra.get("priority", 0),
            "estimate": extra.get("estimate"),
            "state": {"id": state_id},
            "assignee": {"id": extra["assignee_id"]} if extra.get("assignee_id") else None,
            "labelIds": list(label_ids),
            "cycle": None,
            "project": None,
            "team": {"id": self.team_id, "key": self.team_key},
        }
        self.issues[issue_id] = issue
        self.comments.setdefault(issue_id, [])
        return issue

    def label_ids(self, issue_id):
        return list(self.issues[issue_id]["labelIds"])

    def writes(self):
        return [call for call in self.calls if not call[0].startswith(("get_", "list_", "find_"))]

    def _render(self, issue, public_urls=False):
        rendered = copy.deepcopy(issue)
        rendered["labels"] = {"nodes": [copy.deepcopy(self.labels[i]) for i in issue["labelIds"] if i in self.labels]}
        if public_urls and issue["id"] in self.public_descriptions:
            rendered["description"] = self.public_descriptions[issue["id"]]
        return rendered

    # Issues

    async def get_issue(self, issue_id, *, public_urls=False):
        self.calls.append(("get_issue", issue_id))
        issue = self.issues.get(issue_id)
        return self._render(issue, public_urls) if issue else None

    async def create_issue(self, fields):
        self.calls.append(("create_issue", fields))
        issue = self.add_issue(
            issue_id=fields.get("id"),
            title=fields.get("title", ""),
            description=fields.get("description", ""),
            label_ids=fields.get("labelIds", ()),
            priority=fields.get("priority", 0),
            estimate=fields.get("estimate"),
            assignee_id=fields.get("assigneeId"),
        )
        return self._render(issue)

    async def update_issue(self, issue_id, fields):
        self.calls.append(("update_issue", issue_id, fields))
        issue = self.issues[issue_id]
        for key, value in fields.items():
            if key == "stateId":
                issue["state"] = {"id": value}
            elif key == "assigneeId":
                issue["assignee"] = {"id": value} if value else None
            elif key == "cycleId":
                issue["cycle"] = {"id": value} if value else None
            elif key == "projectId":
                issue["project"] = {"id": value} if value else None
            else:
                issue[key] = value

    async def add_issue_label(self, issue_id, label_id):
        self.calls.append(("add_issue_label", issue_id, label_id))
        if label_id not in self.issues[issue_id]["labelIds"]:
            self.issues[issue_id]["labelIds"].append(label_id)

    async def remove_issue_label(self, issue_id, label_id):
        self.calls.append(("remove_issue_label", issue_id, label_id))
        self.issues[issue_id]["labelIds"] = [i for i in self.issues[issue_id]["labelIds"] if i != label_id]

    async def archive_issue(self, issue_id):
        self.calls.append(("archive_issue", issue_id))
        self.issues[issue_id]["archivedAt"] = "2026-01-01T00:00:00.000Z"

    # Labels

    async def get_label(self, label_id):
        return copy.deepcopy(self.labels.get(label_id))

    async def find_label(self, team_id, name):
        self.calls.append(("find_label", name))
        for label in self.labels.values():
            if label["name"].lower() == name.lower():
                return copy.deepcopy(label)
        return None

    async def create_label(self, team_id, name, color=None):
        self.calls.append(("create_label", name))
        label_id = f"label-{next(self._ids)}"
        self.labels[label_id] = {"id": label_id, "name": name, "color": color}
        return copy.deepcopy(self.labels[label_id])

    # Comments

    async def get_comment(self, comment_id, *, public_urls=False):
        for comments in self.comments.values():
            for comment in comments:
                if comment["id"] == comment_id:
                    return copy.deepcopy(comment)
        return None

    async def list_comments(self, issue_id, *, public_urls=False):
        self.calls.append(("list_comments", issue_id))
        return copy.deepcopy(self.comments.get(issue_id, []))

    async def create_comment(self, issue_id, body, *, comment_id=None):
        self.calls.append(("create_comment", issue_id, body))
        comment = {
            "id": comment_id or f"comment-{next(self._ids)}",
            "body": body,
            "createdAt": f"2024-01-01T00:00:{len(self.comments.get(issue_id, [])):02d}Z",
            "user": {"id": "linear-viewer", "displayName": "viewer"},
        }
        self.comments.setdefault(issue_id, []).append(comment)
        return {"id": comment["id"]}

    async def update_comment(self, comment_id, body):
        self.calls.append(("update_comment", comment_id, body))
        for comments in self.comments.values():
            for comment in comments:
                if comment["id"] == comment_id:
                    comment["body"] = body
                    return
        raise KeyError(comment_id)

    # Cycles and projects

    async def get_cycle(self, cycle_id):
        return copy.deepcopy(self.cycles.get(cycle_id))

    async def get_project(self, project_id):
        return copy.deepcopy(self.projects.get(project_id))

    async def create_cycle(self, fields):
        self.calls.append(("create_cycle", fields))
        cycle_id = f"cycle-{next(self._ids)}"
        self.cycles[cycle_id] = {"id": cycle_id, **fields}
        return {"id": cycle_id}

    async def update_cycle(self, cycle_id, fields):
        self.calls.append(("update_cycle", cycle_id, fields))
        self.cycles[cycle_id].update(fields)

    async def create_project(self, fields):
        self.calls.append(("create_project", fields))
        project_id = f"project-{next(self._ids)}"
        self.projects[project_id] = {"id": project_id, **fields}
        return {"id": project_id}

    async def update_project(self, project_id, fields):
        self.calls.append(("update_project", project_id, fields))
        self.projects[project_id].update(fields)

    # Users

    async def get_viewer(self):
        return dict(self.viewer)

    async def get_user(self, user_id):
        return copy.deepcopy(self.users.get(user_id))

    # Attachments

    async def create_attachment(self, issue_id, url, title, subtitle=None):
        self.calls.append(("create_attachment", issue_id, url))
        self.attachments.append({"issueId": issue_id, "url": url, "title": title, "subtitle": subtitle})

    # Webhooks

    async def list_webhooks(self):
        return copy.deepcopy(self.webhooks)

    async def delete_webhook(self, webhook_id):
        self.calls.append(("delete_webhook", webhook_id))
        self.webhooks = [hook for hook in self.webhooks if hook["id"] != webhook_id]


class FakeClientFactory:
    """Hands out the same fake clients for every request"""

    def __init__(self, linear=None, github=None):
        self.linear_client = linear or FakeLinearClient()
        self.github_client = github or FakeGitHubClient()
        self.linear_keys = []

    def linear(self, api_key):
        self.linear_keys.append(api_key)
        return self.linear_client

    def github(self, token, repo_name):
        return self.github_client


def build_context(store, linear=None, github=None, team=None, repo=None, bot=None, anonymous=False, sync=None):
    """A SyncContext wired to fake clients"""
    from syncbridge.services.adapters import GitHubAdapter, LinearAdapter
    from syncbridge.services.content import ContentTransformer
    from syncbridge.services.engine import SyncContext
    from syncbridge.services.identity import IdentityMapper
    from syncbridge.services.loop_guard import BotIdentity

    linear = linear or FakeLinearClient()
    github = github or FakeGitHubClient()
    team = team or make_team()
    repo = repo or make_repo()
    identity = IdentityMapper(store, linear, github, team)
    return SyncContext(
        sync=sync,
        team=team,
        repo=repo,
        linear=LinearAdapter(linear, team),
        github=GitHubAdapter(github, repo),
        identity=identity,
        content=ContentTransformer(identity),
        bot=bot or BotIdentity(),
        anonymous=anonymous,
    )


def make_vault(**config):
    """A credential vault with a throwaway key and no global overrides"""
    from cryptography.fernet import Fernet

    from syncbridge.services.vault import CredentialVault, Encryption

    settings = make_settings(**config)
    return CredentialVault(Encryption(key=Fernet.generate_key().decode()), config=settings)


def make_settings(**overrides):
    from syncbridge.config import Settings

    fields = dict(
        linear_api_key=None,
        github_api_key=None,
        linear_application_admin_key=None,
        linear_bot_user_id=None,
        github_bot_login=None,
        linear_webhook_ips="35.231.147.226",
        trust_forwarded_for=False,
        github_trigger_label="linear",
        public_url="https://sync.example.com",
    )
    fields.update(overrides)
    return Settings(**fields)


async def seed_sync(store, vault, *, linear_user_id="user-1", github_user_id=10):
    """Team, repository and one sync linking them"""
    team = make_team()
    repo = make_repo()
    await store.upsert_linear_team(
        team.team_id,
        team_name=team.team_name,
        team_key=team.team_key,
        public_label_id=team.public_label_id,
        todo_state_id=team.todo_state_id,
        done_state_id=team.done_state_id,
        canceled_state_id=team.canceled_state_id,
    )
    await store.upsert_github_repo(repo.repo_id, repo_name=repo.repo_name, webhook_secret=repo.webhook_secret)
    return await store.create_sync(
        linear_user_id=linear_user_id,
        linear_team_id=team.team_id,
        linear_api_key=vault.seal("linear-key"),
        github_user_id=github_user_id,
        github_repo_id=repo.repo_id,
        github_api_key=vault.seal("github-key"),
    )
