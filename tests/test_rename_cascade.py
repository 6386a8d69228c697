"""Tests for renaming a page together with its subtree."""

import pytest

from wikitree.db.models import Page
from wikitree.db.services import hierarchy_service, page_service
from wikitree.db.services.rename_service import rewrite_prefix
from wikitree.lib.exceptions import InvalidSlugError, SlugConflictError
from wikitree.lib.hooks import hooks, PAGE_SLUG_CHANGED


async def _slugs(db_session) -> list[str]:
    return [p.slug for p in await page_service.list_pages(db_session, order_by="slug", descending=False)]


class TestRewritePrefix:
    """Tests for rewrite_prefix."""

    def test_rewrites_descendants_only(self):
        assert rewrite_prefix("linux/ubuntu", "linux", "commands/linux") == "commands/linux/ubuntu"
        assert rewrite_prefix("linuxmint", "linux", "commands/linux") is None
        assert rewrite_prefix("linux", "linux", "commands/linux") is None


class TestCascadeRename:
    """Renaming through page_service.update_page."""

    @pytest.fixture
    async def linux(self, db_session, author_id):
        await page_service.create_page(db_session, author_id, slug="linux", title="Linux")
        await page_service.create_page(db_session, author_id, slug="linux/ubuntu", title="Ubuntu")
        await page_service.create_page(db_session, author_id, slug="linux/ubuntu/networking", title="Net")
        await page_service.create_page(db_session, author_id, slug="linuxmint", title="Mint")
        return await page_service.get_page_by_slug(db_session, "linux")

    async def test_moves_whole_subtree(self, db_session, author_id, linux):
        """Every descendant follows the page; unrelated prefixes stay."""
        result = await page_service.update_page(db_session, linux.id, author_id, slug="commands/linux")

        assert await _slugs(db_session) == [
            "commands",
            "commands/linux",
            "commands/linux/ubuntu",
            "commands/linux/ubuntu/networking",
            "linuxmint",
        ]
        assert result.slug_change.new_slug == "commands/linux"
        assert sorted((c.old_slug, c.new_slug) for c in result.cascaded_changes) == [
            ("linux/ubuntu", "commands/linux/ubuntu"),
            ("linux/ubuntu/networking", "commands/linux/ubuntu/networking"),
        ]
        assert len(result.all_slug_changes) == 3

    async def test_parent_pointers_follow_the_move(self, db_session, author_id, linux):
        """The moved page hangs under its new auto-created parent; the tree stays consistent."""
        await page_service.update_page(db_session, linux.id, author_id, slug="commands/linux")

        commands = await page_service.get_page_by_slug(db_session, "commands")
        moved = await page_service.get_page_by_slug(db_session, "commands/linux")
        ubuntu = await page_service.get_page_by_slug(db_session, "commands/linux/ubuntu")

        assert moved.parent_id == commands.id
        assert ubuntu.parent_id == moved.id
        assert await hierarchy_service.verify_hierarchy(db_session) == []

    async def test_move_to_root(self, db_session, author_id, linux):
        ubuntu = await page_service.get_page_by_slug(db_session, "linux/ubuntu")

        await page_service.update_page(db_session, ubuntu.id, author_id, slug="ubuntu")

        moved = await page_service.get_page_by_slug(db_session, "ubuntu")
        assert moved.parent_id is None
        assert await page_service.page_exists(db_session, "ubuntu/networking")
        assert await hierarchy_service.verify_hierarchy(db_session) == []

    async def test_conflict_rolls_back_everything(self, db_session, author_id, linux):
        """A rename onto an existing slug changes nothing."""
        await page_service.create_page(db_session, author_id, slug="target", title="Target")
        before = await _slugs(db_session)

        with pytest.raises(SlugConflictError):
            await page_service.update_page(db_session, linux.id, author_id, slug="target")

        assert await _slugs(db_session) == before

    async def test_cannot_move_beneath_itself(self, db_session, author_id, linux):
        with pytest.raises(InvalidSlugError):
            await page_service.update_page(db_session, linux.id, author_id, slug="linux/archive")
        assert not await page_service.page_exists(db_session, "linux/archive")

    async def test_same_slug_is_a_no_op(self, db_session, author_id, linux):
        result = await page_service.update_page(db_session, linux.id, author_id, slug="Linux")

        assert result.slug_change is None
        assert result.cascaded_changes == []

    async def test_slug_changed_hook_per_descendant(self, db_session, author_id, linux):
        """page_slug_changed fires once for every cascaded rename, after commit."""
        seen = []
        hooks.add_action(PAGE_SLUG_CHANGED, lambda page, change: seen.append((page.slug, change.old_slug)))

        await page_service.update_page(db_session, linux.id, author_id, slug="os/linux")

        assert sorted(seen) == [
            ("os/linux/ubuntu", "linux/ubuntu"),
            ("os/linux/ubuntu/networking", "linux/ubuntu/networking"),
        ]

    async def test_drifted_descendant_keeps_its_slug(self, db_session, author_id, linux, caplog):
        """A child whose slug no longer shares the prefix is left in place."""
        stray = await page_service.create_page(db_session, author_id, slug="stray", title="Stray")
        page = await db_session.get(Page, stray.id)
        page.parent_id = linux.id
        await db_session.commit()

        result = await page_service.update_page(db_session, linux.id, author_id, slug="os/linux")

        assert "stray" not in [c.old_slug for c in result.cascaded_changes]
        assert await page_service.page_exists(db_session, "stray")
        assert "does not share its slug prefix" in caplog.text
