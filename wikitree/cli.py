"""CLI commands for wikitree."""

import asyncio
import logging
import sys
from pathlib import Path
from uuid import UUID

import click

from wikitree.config import get_settings

LOG_LEVELS = ["debug", "info", "warning", "error"]


@click.group()
@click.version_option(package_name="wikitree")
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(LOG_LEVELS),
    help="Logging level (defaults to the configured log_level)",
)
def cli(log_level):
    """wikitree - a hierarchical markdown wiki."""
    level = log_level or get_settings().log_level
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _run_alembic(args: list[str]) -> None:
    """Build an Alembic Config programmatically and run the given command."""
    from alembic.config import Config, CommandLine

    package_dir = Path(__file__).parent

    cfg = Config()
    cfg.set_main_option("script_location", str(package_dir / "alembic"))

    # Parse and run through CommandLine for proper subcommand dispatch
    cmd = CommandLine(prog="wikitree db")
    options = cmd.parser.parse_args(args)
    if not hasattr(options, "cmd"):
        cmd.parser.error("too few arguments")
    else:
        cfg.cmd_opts = options
        fn, positional, kwarg = options.cmd
        fn(
            cfg,
            *[getattr(options, k, None) for k in positional],
            **{k: getattr(options, k, None) for k in kwarg},
        )


@cli.command(
    context_settings=dict(
        ignore_unknown_options=True,
        allow_extra_args=True,
    )
)
@click.pass_context
def db(ctx):
    """Run database migrations via Alembic.

    \b
    Examples:
        wikitree db upgrade head     # Apply all migrations
        wikitree db downgrade -1     # Rollback one migration
        wikitree db current          # Show current revision
        wikitree db history          # Show migration history
    """
    args = ctx.args
    if not args:
        click.echo(ctx.get_help())
        return

    _run_alembic(args)


async def _check_hierarchy(repair: bool, author_id: UUID | None):
    from wikitree.app_factory import create_wiki
    from wikitree.db.services import hierarchy_service

    wiki = create_wiki()
    try:
        async with wiki.session() as db_session:
            if repair:
                repaired = await hierarchy_service.repair_hierarchy(db_session, author_id)
                remaining = await hierarchy_service.verify_hierarchy(db_session)
                return repaired, remaining
            return [], await hierarchy_service.verify_hierarchy(db_session)
    finally:
        await wiki.dispose()


@cli.command()
@click.option("--repair", is_flag=True, help="Re-derive parent links from slugs")
@click.option("--author", "author_id", type=click.UUID, default=None, help="Author for created placeholder pages")
def check(repair, author_id):
    """Verify that every page's slug matches its parent chain."""
    repaired, remaining = asyncio.run(_check_hierarchy(repair, author_id))

    for issue in repaired:
        click.echo(f"repaired  {issue.slug}: {issue.detail}")
    for issue in remaining:
        click.echo(f"{issue.kind:<17} {issue.slug}: {issue.detail}")

    if remaining:
        click.echo(f"{len(remaining)} hierarchy issue(s) found", err=True)
        sys.exit(1)
    click.echo("Hierarchy is consistent")


async def _import_document(path: Path, slug: str, title: str, author_id: UUID, tags: list[str]):
    from wikitree.app_factory import create_wiki
    from wikitree.db.services import page_service

    wiki = create_wiki()
    try:
        async with wiki.session() as db_session:
            page = await page_service.import_markdown_file(db_session, author_id, path, slug, title, tags)
            return page.slug if page is not None else None
    finally:
        await wiki.dispose()


@cli.command("import-docs")
@click.argument("path", type=click.Path(path_type=Path))
@click.option("--slug", required=True, help="Slug of the new page")
@click.option("--title", required=True, help="Title of the new page")
@click.option("--author", "author_id", type=click.UUID, required=True, help="Author of the new page")
@click.option("--tag", "tags", multiple=True, help="Tag to attach (repeatable)")
def import_docs(path, slug, title, author_id, tags):
    """Import a markdown file as a page unless the slug already exists."""
    imported = asyncio.run(_import_document(path, slug, title, author_id, list(tags)))
    if imported is None:
        click.echo(f"Skipped {path}: page exists or file is missing")
    else:
        click.echo(f"Imported {path} -> /wiki/{imported}")


async def _import_files(paths: list[Path], author_id: UUID):
    from wikitree.app_factory import create_wiki
    from wikitree.db.services import page_service
    from wikitree.lib.exceptions import WikiError

    wiki = create_wiki()
    imported, failed = [], []
    try:
        for path in paths:
            async with wiki.session() as db_session:
                try:
                    text = await asyncio.to_thread(path.read_text, encoding="utf-8")
                    result = await page_service.import_markdown(db_session, author_id, text, path.name)
                except (OSError, UnicodeDecodeError, WikiError) as exc:
                    failed.append((path, str(exc)))
                    continue
                imported.append((path, result))
    finally:
        await wiki.dispose()
    return imported, failed


@cli.command("import")
@click.argument("paths", nargs=-1, required=True, type=click.Path(path_type=Path))
@click.option("--author", "author_id", type=click.UUID, required=True, help="Author of the imported pages")
def import_files(paths, author_id):
    """Import markdown files, reading title, slug and tags from front matter.

    \b
    An empty placeholder page with the same slug is filled in; a page with
    content keeps its slug and the import gets a -2, -3, ... suffix.
    """
    imported, failed = asyncio.run(_import_files(list(paths), author_id))

    for path, result in imported:
        if result.filled_placeholder:
            note = " (filled placeholder)"
        elif result.renamed:
            note = f" ({result.requested_slug} was taken)"
        else:
            note = ""
        click.echo(f"Imported {path} -> /wiki/{result.page.slug}{note}")
    for path, reason in failed:
        click.echo(f"Failed {path}: {reason}", err=True)

    if failed:
        click.echo(f"{len(imported)} imported, {len(failed)} failed", err=True)
        sys.exit(1)


async def _backup_all() -> int:
    from sqlalchemy import select

    from wikitree.app_factory import create_wiki, default_author_name
    from wikitree.db.models import Page
    from wikitree.lib.slugs import ancestor_segments

    wiki = create_wiki()
    try:
        if wiki.backup is None:
            raise click.ClickException("Backups are disabled (set backup.enabled in app.yaml)")
        async with wiki.session() as db_session:
            result = await db_session.execute(select(Page).order_by(Page.slug))
            pages = result.scalars().all()
            for page in pages:
                await wiki.backup.save_page(page, default_author_name(page.author_id), ancestor_segments(page.slug))
            return len(pages)
    finally:
        await wiki.dispose()


@cli.command("backup-all")
def backup_all():
    """Write every page to the markdown backup directory."""
    count = asyncio.run(_backup_all())
    click.echo(f"Backed up {count} page(s) to {get_settings().backup.path}")
