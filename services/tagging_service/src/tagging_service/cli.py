from __future__ import annotations

import logging
from pathlib import Path

import typer

from transtag_core.db.session import SessionLocal
from transtag_core.registry import DEFAULT_REGISTRY, TableRegistry
from transtag_core.settings import settings as core_settings
from tagging_service.cursor import is_idle, load_cursor, reset
from tagging_service.purge import MappingPurger
from tagging_service.settings import settings
from tagging_service.traversal import ContentTagger, build_processor

app = typer.Typer(help="Tagging service (tag content, purge scope mappings).")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _registry(path: Path | None) -> TableRegistry:
    path = path or settings.registry_path
    if path is None:
        return DEFAULT_REGISTRY
    if not path.exists():
        raise typer.BadParameter(f"Registry file not found: {path}")
    return TableRegistry.from_json_file(path)


def _tagger(session, registry: TableRegistry, *, records: int | None = None, page_size: int | None = None) -> ContentTagger:
    processor = build_processor(
        session,
        site_language=core_settings.site_language,
        languages=core_settings.installed_languages,
        interface_language=settings.interface_language,
        extract_markup=settings.extract_markup,
    )
    return ContentTagger(
        session,
        registry,
        processor,
        records_per_run=records or settings.records_per_run,
        page_size=page_size or settings.page_size,
        cursor_name=settings.cursor_name,
    )


@app.command("tag")
def tag(
    *,
    records: int | None = typer.Option(None, help="Record budget for this run (default from settings)."),
    page_size: int | None = typer.Option(None, help="Rows fetched per page."),
    registry_path: Path | None = typer.Option(None, "--registry", help="JSON table registry override."),
) -> None:
    """
    Tag the next slice of content, resuming from the persisted cursor.
    """
    registry = _registry(registry_path)
    with SessionLocal() as session:
        result = _tagger(session, registry, records=records, page_size=page_size).run()
    typer.echo(
        f"processed={result.processed} updated={result.updated_rows} skipped={result.skipped} errors={result.errors}"
    )
    if result.completed_pass:
        typer.echo("pass complete; cursor reset")
    elif result.stopped_at:
        typer.echo(f"paused at {result.stopped_at[0]} id={result.stopped_at[1]}")


@app.command("purge")
def purge(
    *,
    batch_size: int | None = typer.Option(None, help="Mappings verified against content this run."),
    registry_path: Path | None = typer.Option(None, "--registry", help="JSON table registry override."),
) -> None:
    """
    Remove scope mappings for deleted scopes, orphaned identifiers and markers no longer in content.
    """
    registry = _registry(registry_path)
    with SessionLocal() as session:
        result = MappingPurger(
            session,
            registry,
            batch_size=batch_size or settings.purge_batch_size,
            cursor_name=settings.purge_cursor_name,
        ).run()
    typer.echo(
        f"deleted_scope={result.missing_scope} orphaned={result.orphaned} "
        f"stale={result.stale} checked={result.checked}"
    )


@app.command("rebuild-scope")
def rebuild_scope(
    scope_id: int,
    *,
    registry_path: Path | None = typer.Option(None, "--registry", help="JSON table registry override."),
) -> None:
    """
    Re-tag every row owned by one scope (container).
    """
    registry = _registry(registry_path)
    with SessionLocal() as session:
        result = _tagger(session, registry).rebuild_scope(scope_id)
    typer.echo(f"scope={scope_id} rows={result.processed} updated={result.updated_rows} skipped={result.skipped}")


@app.command("cursor-status")
def cursor_status(name: str | None = typer.Option(None, help="Cursor name (default from settings).")) -> None:
    with SessionLocal() as session:
        cursor = load_cursor(session, name or settings.cursor_name)
        session.commit()
        if is_idle(cursor):
            typer.echo(f"{cursor.name}: idle")
        else:
            typer.echo(f"{cursor.name}: table={cursor.current_table} last_id={cursor.last_id}")


@app.command("cursor-reset")
def cursor_reset(name: str | None = typer.Option(None, help="Cursor name (default from settings).")) -> None:
    name = name or settings.cursor_name
    with SessionLocal() as session:
        reset(load_cursor(session, name))
        session.commit()
    typer.echo(f"{name}: reset")
