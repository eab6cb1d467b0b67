import unittest


def _linear_ref(issue_id="issue-1"):
    from syncbridge.services.events import ItemRef

    return ItemRef(id=issue_id, number=1, key="ENG-1")


def _github_ref():
    from syncbridge.services.events import ItemRef

    return ItemRef(id="555", number=7)


class LoopGuardTests(unittest.TestCase):
    def test_footer_on_github_comment_is_an_echo(self):
        from syncbridge.constants import SYNC_FOOTER
        from syncbridge.services import loop_guard
        from syncbridge.services.events import CommentCreated, Side

        event = CommentCreated(
            source=Side.GITHUB,
            item=_github_ref(),
            comment_id="1",
            body=f"hi\n\n<sub>{SYNC_FOOTER} | alice on Linear</sub>",
        )
        verdict = loop_guard.check(event, None)
        self.assertTrue(verdict)
        self.assertIn("caused by sync", verdict.reason)

    def test_footer_on_linear_comment_edit_is_an_echo(self):
        from syncbridge.constants import SYNC_FOOTER
        from syncbridge.services import loop_guard
        from syncbridge.services.events import CommentEdited, Side

        event = CommentEdited(
            source=Side.LINEAR,
            item=_linear_ref(),
            comment_id="c-1",
            body=f"text\n\n[bob on GitHub](https://x) | {SYNC_FOOTER}",
        )
        self.assertTrue(loop_guard.check(event, None))

    def test_human_comment_is_not_an_echo(self):
        from syncbridge.services import loop_guard
        from syncbridge.services.events import CommentCreated, Side

        event = CommentCreated(source=Side.GITHUB, item=_github_ref(), comment_id="1", body="looks good")
        self.assertFalse(loop_guard.check(event, None))

    def test_issue_edit_with_footer_is_not_suppressed(self):
        from syncbridge.constants import SYNC_FOOTER
        from syncbridge.services import loop_guard
        from syncbridge.services.events import IssueEdited, Side

        # Issues created from Linear keep their footer forever; edits must still flow
        event = IssueEdited(source=Side.GITHUB, item=_github_ref(), body=f"new text\n\n<sub>{SYNC_FOOTER} | [ENG-1]()</sub>")
        self.assertFalse(loop_guard.check(event, None))

    def test_generated_linear_ids_are_echoes(self):
        from syncbridge.services import loop_guard
        from syncbridge.services.adapters import generate_linear_uuid
        from syncbridge.services.events import CommentCreated, IssueCreated, Side

        generated = generate_linear_uuid()
        self.assertEqual(len(generated), 36)
        self.assertTrue(generated.endswith("decade"))

        created = IssueCreated(source=Side.LINEAR, item=_linear_ref(generated), title="t")
        self.assertTrue(loop_guard.check(created, None))

        comment = CommentCreated(source=Side.LINEAR, item=_linear_ref(), comment_id=generated, body="plain")
        self.assertTrue(loop_guard.check(comment, None))

        human = IssueCreated(source=Side.LINEAR, item=_linear_ref("0f8b3c1e-0000-4000-8000-123456789abc"), title="t")
        self.assertFalse(loop_guard.check(human, None))

    def test_bot_actor_is_an_echo_for_any_event(self):
        from syncbridge.services import loop_guard
        from syncbridge.services.events import LabelAdded, LabelRef, Side, StateChanged

        bot = loop_guard.BotIdentity(linear_user_id="bot-user", github_login="SyncBot")

        github_event = LabelAdded(source=Side.GITHUB, item=_github_ref(), actor_login="syncbot", label=LabelRef(name="bug"))
        self.assertTrue(loop_guard.check(github_event, bot))

        linear_event = StateChanged(source=Side.LINEAR, item=_linear_ref(), actor_id="bot-user", state_id="s")
        self.assertTrue(loop_guard.check(linear_event, bot))

        other = StateChanged(source=Side.LINEAR, item=_linear_ref(), actor_id="alice", state_id="s")
        self.assertFalse(loop_guard.check(other, bot))

    def test_unknown_bot_identity_never_matches(self):
        from syncbridge.services import loop_guard
        from syncbridge.services.events import Side

        bot = loop_guard.BotIdentity()
        self.assertFalse(bot.matches(Side.LINEAR, None, None))
        self.assertFalse(bot.matches(Side.GITHUB, "1", "someone"))

    def test_milestone_with_footer_is_an_echo(self):
        from syncbridge.constants import SYNC_FOOTER
        from syncbridge.services import loop_guard
        from syncbridge.services.events import ItemRef, MilestoneEdited, MilestoneRef, Side

        event = MilestoneEdited(
            source=Side.GITHUB,
            item=ItemRef(id="1", number=1),
            milestone=MilestoneRef(id="1", title="v.1", description=f"desc\n\n> {SYNC_FOOTER}"),
        )
        self.assertTrue(loop_guard.check(event, None))
        self.assertTrue(loop_guard.check_milestone_creation(f"x {SYNC_FOOTER}", "v.1"))
        self.assertFalse(loop_guard.check_milestone_creation("plain", "v.1"))
