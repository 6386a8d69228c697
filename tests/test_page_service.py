"""Tests for page creation, update, listing and deletion."""

from uuid import uuid4

import pytest
from sqlalchemy import func, select

from wikitree.db.models import Page, PageRevision, Tag, page_tags
from wikitree.db.services import page_service, revision_service
from wikitree.lib.exceptions import (
    ContentUnavailableError,
    InvalidInputError,
    InvalidSlugError,
    InvalidTitleError,
    PageNotFoundError,
    SlugConflictError,
)
from wikitree.lib.hooks import (
    hooks,
    AFTER_PAGE_DELETE,
    AFTER_PAGE_SAVE,
    BEFORE_PAGE_SAVE,
    PAGE_CONTENT,
)


async def _count(db_session, column) -> int:
    result = await db_session.execute(select(func.count()).select_from(column))
    return result.scalar()


class TestCreatePage:
    """Tests for page_service.create_page."""

    async def test_creates_page_with_initial_revision(self, db_session, author_id):
        """A new page gets exactly one revision with the fixed comment."""
        page = await page_service.create_page(
            db_session, author_id, slug="Getting Started", title="Getting Started", content="# Hello"
        )

        assert page.slug == "getting-started"
        assert page.author_id == author_id
        assert page.is_published
        assert page.published_at is not None
        assert '<h1 id="hello">' in page.rendered_content

        revisions = await revision_service.list_revisions(db_session, page.id)
        assert len(revisions) == 1
        assert revisions[0].revision_number == 1
        assert revisions[0].comment == revision_service.INITIAL_REVISION_COMMENT
        assert revisions[0].content == "# Hello"

    async def test_slug_derived_from_title(self, db_session, author_id):
        """An empty slug falls back to the normalized title."""
        page = await page_service.create_page(db_session, author_id, slug="  ", title="My First Page")
        assert page.slug == "my-first-page"

    async def test_invalid_slug_checked_before_title(self, db_session, author_id):
        """A slug that normalizes to nothing is reported even with a blank title."""
        with pytest.raises(InvalidSlugError) as exc_info:
            await page_service.create_page(db_session, author_id, slug="!!!", title="")
        assert exc_info.value.field == "slug"

    async def test_blank_title_rejected(self, db_session, author_id):
        """Titles must contain something besides whitespace."""
        with pytest.raises(InvalidTitleError) as exc_info:
            await page_service.create_page(db_session, author_id, slug="page", title="   ")
        assert exc_info.value.field == "title"

    async def test_duplicate_slug_conflicts(self, db_session, author_id):
        """Slugs are unique after normalization."""
        await page_service.create_page(db_session, author_id, slug="docs", title="Docs")

        with pytest.raises(SlugConflictError) as exc_info:
            await page_service.create_page(db_session, author_id, slug="DOCS", title="Docs again")
        assert exc_info.value.slug == "docs"
        assert await page_service.count_pages(db_session) == 1

    async def test_slug_taken_after_existence_check_conflicts(self, db_session, author_id):
        """A unique violation at insert time is reported as a slug conflict."""

        async def insert_first(page, is_new):
            if page.slug == "solo":
                db_session.add(Page(slug="solo", title="Rival", content="", tags=[]))
                await db_session.flush()

        hooks.add_action(BEFORE_PAGE_SAVE, insert_first)

        with pytest.raises(SlugConflictError) as exc_info:
            await page_service.create_page(db_session, author_id, slug="solo", title="Solo")

        assert exc_info.value.slug == "solo"
        assert await page_service.count_pages(db_session) == 0
        assert await _count(db_session, PageRevision) == 0

    async def test_hierarchical_slug_creates_placeholders(self, db_session, author_id):
        """Missing ancestors are created as published, empty placeholders."""
        page = await page_service.create_page(
            db_session, author_id, slug="linux/ubuntu/networking", title="Networking"
        )

        linux = await page_service.get_page_by_slug(db_session, "linux")
        ubuntu = await page_service.get_page_by_slug(db_session, "linux/ubuntu")

        assert linux.title == "Linux"
        assert linux.content == ""
        assert linux.is_published
        assert linux.parent_id is None
        assert ubuntu.title == "Ubuntu"
        assert ubuntu.parent_id == linux.id
        assert page.parent_id == ubuntu.id
        # Placeholders carry no revisions
        assert await revision_service.get_revision_count(db_session, linux.id) == 0

    async def test_existing_ancestor_is_reused(self, db_session, author_id):
        """Creating a second child does not duplicate its parent."""
        await page_service.create_page(db_session, author_id, slug="linux/ubuntu", title="Ubuntu")
        await page_service.create_page(db_session, author_id, slug="linux/debian", title="Debian")

        assert await page_service.count_pages(db_session) == 3

    async def test_tags_are_normalized(self, db_session, author_id):
        """Tag names are trimmed, lower-cased and deduplicated."""
        page = await page_service.create_page(
            db_session, author_id, slug="tagged", title="Tagged", tags=["Linux", " linux ", "How To"]
        )
        assert page.tag_names == ["how to", "linux"]

    async def test_unpublished_page(self, db_session, author_id):
        """Drafts have no publish date and are hidden from published lookups."""
        page = await page_service.create_page(
            db_session, author_id, slug="draft", title="Draft", is_published=False
        )

        assert page.published_at is None
        assert await page_service.get_page_by_slug(db_session, "draft", published_only=True) is None
        assert await page_service.get_page_by_slug(db_session, "draft") is not None

    async def test_hooks_fire(self, db_session, author_id):
        """before_page_save runs before insert, after_page_save after commit."""
        events = []
        hooks.add_action(BEFORE_PAGE_SAVE, lambda page, is_new: events.append(("before", page.slug, is_new)))
        hooks.add_action(
            AFTER_PAGE_SAVE,
            lambda page, is_new, previous_slug: events.append(("after", page.slug, is_new)),
        )

        await page_service.create_page(db_session, author_id, slug="a/b", title="B")

        assert events == [
            ("before", "a", True),
            ("before", "a/b", True),
            ("after", "a", True),
            ("after", "a/b", True),
        ]

    async def test_before_hook_can_veto(self, db_session, author_id):
        """An exception in before_page_save rolls everything back."""

        def veto(page, is_new):
            if page.slug == "a/b":
                raise RuntimeError("nope")

        hooks.add_action(BEFORE_PAGE_SAVE, veto)

        with pytest.raises(RuntimeError):
            await page_service.create_page(db_session, author_id, slug="a/b", title="B")
        assert await page_service.count_pages(db_session) == 0

    async def test_failing_after_hook_does_not_undo_create(self, db_session, author_id):
        """after_page_save failures are logged, the page stays."""

        def broken(page, is_new, previous_slug):
            raise RuntimeError("index offline")

        hooks.add_action(AFTER_PAGE_SAVE, broken)

        page = await page_service.create_page(db_session, author_id, slug="kept", title="Kept")
        assert await page_service.get_page_by_id(db_session, page.id) is not None

    async def test_content_filter_applies_before_rendering(self, db_session, author_id):
        """The page_content filter can rewrite markdown before rendering."""
        hooks.add_filter(PAGE_CONTENT, lambda content, page: content.replace("{{site}}", "Wiki"))

        page = await page_service.create_page(
            db_session, author_id, slug="home", title="Home", content="Welcome to {{site}}"
        )

        assert page.content == "Welcome to {{site}}"
        assert "Welcome to Wiki" in page.rendered_content

    async def test_renderer_failure_is_content_unavailable(self, db_session, author_id):
        """A broken content filter surfaces as ContentUnavailableError."""

        def broken(content, page):
            return 42

        hooks.add_filter(PAGE_CONTENT, broken)

        with pytest.raises(ContentUnavailableError):
            await page_service.render_page_content("text")


class TestUpdatePage:
    """Tests for page_service.update_page."""

    async def test_content_change_records_previous_content(self, db_session, author_id):
        """Each content update stores the content from just before it."""
        page = await page_service.create_page(db_session, author_id, slug="p", title="P", content="v1")

        await page_service.update_page(db_session, page.id, author_id, content="v2", comment="second")
        await page_service.update_page(db_session, page.id, author_id, content="v3", comment="third")

        revisions = await revision_service.list_revisions(db_session, page.id)
        assert [(r.revision_number, r.content, r.comment) for r in revisions] == [
            (3, "v2", "third"),
            (2, "v1", "second"),
            (1, "v1", "Initial version"),
        ]
        refreshed = await page_service.get_page_by_id(db_session, page.id)
        assert refreshed.content == "v3"

    async def test_unchanged_content_records_nothing(self, db_session, author_id):
        """Updating other fields or resubmitting the same content adds no revision."""
        page = await page_service.create_page(db_session, author_id, slug="p", title="P", content="same")

        await page_service.update_page(db_session, page.id, author_id, title="New Title", content="same")

        assert await revision_service.get_revision_count(db_session, page.id) == 1
        assert (await page_service.get_page_by_id(db_session, page.id)).title == "New Title"

    async def test_content_and_slug_change_together(self, db_session, author_id):
        """A combined update still snapshots the old content."""
        page = await page_service.create_page(db_session, author_id, slug="old", title="Old", content="before")

        result = await page_service.update_page(
            db_session, page.id, author_id, slug="new", content="after"
        )

        assert result.page.slug == "new"
        assert result.slug_change.old_slug == "old"
        assert result.slug_change.new_slug == "new"
        revisions = await revision_service.list_revisions(db_session, page.id)
        assert revisions[0].content == "before"

    async def test_missing_page(self, db_session):
        """Updating an unknown id raises PageNotFoundError."""
        with pytest.raises(PageNotFoundError):
            await page_service.update_page(db_session, uuid4(), title="x")

    async def test_blank_title_rejected(self, db_session, author_id):
        page = await page_service.create_page(db_session, author_id, slug="p", title="P")
        with pytest.raises(InvalidTitleError):
            await page_service.update_page(db_session, page.id, title="  ")

    async def test_empty_slug_rejected(self, db_session, author_id):
        page = await page_service.create_page(db_session, author_id, slug="p", title="P")
        with pytest.raises(InvalidSlugError):
            await page_service.update_page(db_session, page.id, slug="///")

    async def test_slug_conflict_leaves_page_untouched(self, db_session, author_id):
        """A colliding rename fails without changing content or slug."""
        await page_service.create_page(db_session, author_id, slug="taken", title="Taken")
        page = await page_service.create_page(db_session, author_id, slug="mine", title="Mine", content="a")

        with pytest.raises(SlugConflictError):
            await page_service.update_page(db_session, page.id, author_id, slug="Taken", content="b")

        refreshed = await page_service.get_page_by_slug(db_session, "mine")
        assert refreshed.content == "a"
        assert await revision_service.get_revision_count(db_session, page.id) == 1

    async def test_publish_sets_published_at_once(self, db_session, author_id):
        """Publishing a draft stamps published_at; unpublishing keeps it."""
        page = await page_service.create_page(
            db_session, author_id, slug="draft", title="Draft", is_published=False
        )

        result = await page_service.update_page(db_session, page.id, is_published=True)
        published_at = result.page.published_at
        assert published_at is not None

        result = await page_service.update_page(db_session, page.id, is_published=False)
        assert not result.page.is_published
        assert result.page.published_at == published_at

    async def test_replacing_tags_prunes_unused(self, db_session, author_id):
        """Tags no page uses any more are deleted."""
        page = await page_service.create_page(
            db_session, author_id, slug="p", title="P", tags=["old", "kept"]
        )

        result = await page_service.update_page(db_session, page.id, tags=["kept", "new"])

        assert result.page.tag_names == ["kept", "new"]
        names = (await db_session.execute(select(Tag.name).order_by(Tag.name))).scalars().all()
        assert names == ["kept", "new"]

    async def test_after_save_reports_previous_slug(self, db_session, author_id):
        """after_page_save carries the slug the page had before the update."""
        page = await page_service.create_page(db_session, author_id, slug="before", title="T")
        seen = []
        hooks.add_action(
            AFTER_PAGE_SAVE,
            lambda page, is_new, previous_slug: seen.append((page.slug, is_new, previous_slug)),
        )

        await page_service.update_page(db_session, page.id, slug="after")

        assert seen == [("after", False, "before")]


class TestQueries:
    """Tests for lookups and listings."""

    async def test_slug_lookup_is_case_insensitive(self, db_session, author_id):
        await page_service.create_page(db_session, author_id, slug="linux/ubuntu", title="Ubuntu")

        page = await page_service.get_page_by_slug(db_session, "/Linux/Ubuntu/")

        assert page is not None
        assert page.slug == "linux/ubuntu"
        assert await page_service.page_exists(db_session, "LINUX")

    async def test_list_pages_filters(self, db_session, author_id):
        """Listings filter by publication, author and tag."""
        other = uuid4()
        await page_service.create_page(db_session, author_id, slug="a", title="A", tags=["x"])
        await page_service.create_page(db_session, author_id, slug="b", title="B", is_published=False)
        await page_service.create_page(db_session, other, slug="c", title="C", tags=["x"])

        published = await page_service.list_pages(db_session, published_only=True, order_by="slug", descending=False)
        assert [p.slug for p in published] == ["a", "c"]

        mine = await page_service.list_pages(db_session, author_id=author_id, order_by="slug", descending=False)
        assert [p.slug for p in mine] == ["a", "b"]

        tagged = await page_service.get_pages_by_tag(db_session, "X")
        assert sorted(p.slug for p in tagged) == ["a", "c"]

    async def test_list_pages_pagination(self, db_session, author_id):
        for slug in ("a", "b", "c", "d"):
            await page_service.create_page(db_session, author_id, slug=slug, title=slug.upper())

        page = await page_service.list_pages(db_session, order_by="title", descending=False, limit=2, offset=1)

        assert [p.slug for p in page] == ["b", "c"]
        assert await page_service.count_pages(db_session) == 4

    async def test_summary_excerpt(self, db_session, author_id):
        await page_service.create_page(
            db_session, author_id, slug="p", title="P", content="# Heading\n\n" + "word " * 60
        )

        [summary] = await page_service.list_pages(db_session)

        assert summary.excerpt.startswith("Heading word")
        assert summary.excerpt.endswith("...")

    async def test_backlinks(self, db_session, author_id):
        """Pages linking with [[...]] to a slug are its backlinks."""
        await page_service.create_page(db_session, author_id, slug="target-page", title="Target")
        await page_service.create_page(db_session, author_id, slug="a", title="A", content="See [[Target Page]]")
        await page_service.create_page(db_session, author_id, slug="b", title="B", content="See [[other]]")
        await page_service.create_page(
            db_session, author_id, slug="c", title="C", content="[[target-page|here]]", is_published=False
        )

        backlinks = await page_service.get_backlinks(db_session, "target-page")

        assert [p.slug for p in backlinks] == ["a"]

    async def test_stats(self, db_session, author_id):
        await page_service.create_page(db_session, author_id, slug="a/b", title="B", tags=["t"])
        await page_service.create_page(db_session, author_id, slug="c", title="C", is_published=False)

        stats = await page_service.get_stats(db_session)

        assert stats.page_count == 3
        assert stats.published_count == 2
        assert stats.tag_count == 1
        assert stats.share_link_count == 0


class TestDeletePages:
    """Tests for delete_pages and friends."""

    async def test_children_first_leaves_no_rows(self, db_session, author_id):
        """Deleting a subtree children-first removes pages, revisions and tags."""
        await page_service.create_page(db_session, author_id, slug="root", title="Root", tags=["a"])
        await page_service.create_page(db_session, author_id, slug="root/one", title="One", tags=["b"])
        await page_service.create_page(db_session, author_id, slug="root/two", title="Two", tags=["a"])
        ids = [
            (await page_service.get_page_by_slug(db_session, slug)).id
            for slug in ("root/one", "root/two", "root")
        ]

        deleted = await page_service.delete_pages(db_session, ids)

        assert deleted == 3
        assert await _count(db_session, Page) == 0
        assert await _count(db_session, PageRevision) == 0
        assert await _count(db_session, Tag) == 0
        assert await _count(db_session, page_tags) == 0

    async def test_missing_id_deletes_nothing(self, db_session, author_id):
        """An unknown id aborts the whole batch."""
        page = await page_service.create_page(db_session, author_id, slug="keep", title="Keep")

        with pytest.raises(PageNotFoundError):
            await page_service.delete_pages(db_session, [page.id, uuid4()])

        assert await page_service.get_page_by_slug(db_session, "keep") is not None

    async def test_parent_first_orphans_children(self, db_session, author_id):
        """Deleting only a parent leaves its children as roots."""
        await page_service.create_page(db_session, author_id, slug="parent/child", title="Child")
        parent = await page_service.get_page_by_slug(db_session, "parent")

        assert await page_service.delete_page(db_session, parent.id)

        child = await page_service.get_page_by_slug(db_session, "parent/child")
        await db_session.refresh(child)
        assert child.parent_id is None

    async def test_delete_page_missing_returns_false(self, db_session):
        assert await page_service.delete_page(db_session, uuid4()) is False

    async def test_delete_page_tree(self, db_session, author_id):
        """delete_page_tree removes the page and all descendants, children first."""
        await page_service.create_page(db_session, author_id, slug="a/b/c", title="C")
        await page_service.create_page(db_session, author_id, slug="other", title="Other")
        a = await page_service.get_page_by_slug(db_session, "a")
        deleted_slugs = []
        hooks.add_action(AFTER_PAGE_DELETE, lambda page: deleted_slugs.append(page.slug))

        ids = await page_service.delete_page_tree(db_session, a.id)

        assert len(ids) == 3
        assert ids[-1] == a.id
        assert deleted_slugs == ["a/b/c", "a/b", "a"]
        assert [p.slug for p in await page_service.list_pages(db_session)] == ["other"]

    async def test_delete_page_tree_missing(self, db_session):
        with pytest.raises(PageNotFoundError):
            await page_service.delete_page_tree(db_session, uuid4())


class TestImportMarkdownFile:
    """Tests for import_markdown_file."""

    async def test_imports_file(self, db_session, author_id, tmp_path):
        doc = tmp_path / "guide.md"
        doc.write_text("# Guide\n\nBody", encoding="utf-8")

        page = await page_service.import_markdown_file(
            db_session, author_id, doc, slug="docs/guide", title="Guide", tags=["docs"]
        )

        assert page.slug == "docs/guide"
        assert page.content == "# Guide\n\nBody"
        assert page.tag_names == ["docs"]

    async def test_skips_existing_page(self, db_session, author_id, tmp_path):
        doc = tmp_path / "guide.md"
        doc.write_text("new", encoding="utf-8")
        await page_service.create_page(db_session, author_id, slug="guide", title="Guide", content="old")

        assert await page_service.import_markdown_file(db_session, author_id, doc, "guide", "Guide") is None
        assert (await page_service.get_page_by_slug(db_session, "guide")).content == "old"

    async def test_skips_missing_file(self, db_session, author_id, tmp_path):
        result = await page_service.import_markdown_file(
            db_session, author_id, tmp_path / "missing.md", "missing", "Missing"
        )
        assert result is None


class TestImportMarkdown:
    """Tests for import_markdown."""

    async def test_front_matter_creates_page(self, db_session, author_id):
        text = "---\ntitle: Network Setup\nslug: guides/network\ntags: [net, howto]\n---\n\nBody text\n"

        result = await page_service.import_markdown(db_session, author_id, text, "network.md")

        assert not result.filled_placeholder
        assert not result.renamed
        assert result.page.slug == "guides/network"
        assert result.page.title == "Network Setup"
        assert result.page.content == "Body text"
        assert result.page.tag_names == ["howto", "net"]
        assert (await page_service.get_page_by_slug(db_session, "guides")).content == ""

    async def test_fills_placeholder(self, db_session, author_id):
        """An empty placeholder is updated in place, keeping its id."""
        await page_service.create_page(db_session, author_id, slug="guides/network", title="Network")
        placeholder = await page_service.get_page_by_slug(db_session, "guides")

        result = await page_service.import_markdown(
            db_session, author_id, "# Guides\n\nAll the guides", "guides.markdown"
        )

        assert result.filled_placeholder
        assert result.page.id == placeholder.id
        assert result.page.title == "Guides"
        assert result.page.content == "# Guides\n\nAll the guides"
        [revision] = await revision_service.list_revisions(db_session, placeholder.id)
        assert revision.comment == page_service.IMPORT_COMMENT
        assert revision.content == ""
        assert await page_service.count_pages(db_session) == 2

    async def test_taken_slug_gets_suffix(self, db_session, author_id):
        await page_service.create_page(db_session, author_id, slug="notes", title="Notes", content="mine")
        await page_service.create_page(db_session, author_id, slug="notes-2", title="Notes 2", content="also")

        result = await page_service.import_markdown(db_session, author_id, "imported", "notes.md")

        assert result.renamed
        assert result.requested_slug == "notes"
        assert result.page.slug == "notes-3"
        assert (await page_service.get_page_by_slug(db_session, "notes")).content == "mine"

    async def test_all_suffixes_taken_conflicts(self, db_session, author_id, monkeypatch):
        monkeypatch.setattr(page_service, "MAX_IMPORT_SUFFIX", 2)
        await page_service.create_page(db_session, author_id, slug="notes", title="Notes", content="a")
        await page_service.create_page(db_session, author_id, slug="notes-2", title="Notes", content="b")

        with pytest.raises(SlugConflictError):
            await page_service.import_markdown(db_session, author_id, "c", "notes.md")

    async def test_rejects_other_extensions(self, db_session, author_id):
        with pytest.raises(InvalidInputError) as exc_info:
            await page_service.import_markdown(db_session, author_id, "text", "notes.txt")

        assert exc_info.value.field == "filename"
        assert await page_service.count_pages(db_session) == 0

    async def test_untitled_file_without_slug(self, db_session, author_id):
        with pytest.raises(InvalidSlugError):
            await page_service.import_markdown(db_session, author_id, "---\ntitle: '!!!'\n---\n", "x.md")
