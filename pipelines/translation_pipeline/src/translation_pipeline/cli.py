from __future__ import annotations

import logging
import signal
import threading
from pathlib import Path

import typer

from transtag_core.db.enums import ConflictPolicy
from transtag_core.db.models import SOURCE_LANG
from transtag_core.db.session import SessionLocal
from transtag_core.errors import ConfigurationError, IdentifierConflictError
from transtag_core.registry import DEFAULT_REGISTRY, TableRegistry
from transtag_core.settings import parse_languages
from transtag_core.translations import TranslationStore
from tagging_service.management import edit_source as edit_source_flow
from translation_pipeline.jobs import enqueue_job, job_status as load_job_status
from translation_pipeline.llm.chat_completions import ChatCompletionsClient
from translation_pipeline.orchestrator import JobRunResult, OrchestratorConfig, TranslationOrchestrator
from translation_pipeline.settings import settings
from translation_pipeline.translator import BatchTranslator

app = typer.Typer(help="Translation pipeline (fill missing languages, manage translations).")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _target_langs(value: str | None) -> list[str]:
    langs = parse_languages(value or settings.target_langs)
    if not langs:
        raise typer.BadParameter("No target languages; pass --langs or set TRANSTAG_TARGET_LANGS (e.g. es,fr).")
    return langs


def _check_api_settings() -> str:
    if not settings.api_key:
        raise typer.BadParameter("Missing TRANSTAG_API_KEY (Bearer token for the chat completions endpoint).")
    if not settings.api_endpoint or not settings.api_model:
        raise typer.BadParameter("TRANSTAG_API_ENDPOINT and TRANSTAG_API_MODEL must both be set.")
    return settings.api_key


def _stop_event() -> threading.Event:
    event = threading.Event()

    def _handle(signum, frame) -> None:
        logging.getLogger(__name__).warning("Received signal %s; stopping after the current batch", signum)
        event.set()

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)
    return event


def _echo_result(result: JobRunResult) -> None:
    typer.echo(
        f"job={result.job_id} status={result.status.value} processed={result.processed}/{result.total} "
        f"written={result.written}"
    )
    if result.continuation_id:
        typer.echo(f"continued_by={result.continuation_id}")
    if result.failure_reason:
        typer.echo(f"reason={result.failure_reason}")


def _run(fn) -> None:
    api_key = _check_api_settings()
    stop = _stop_event()
    with ChatCompletionsClient(api_key=api_key) as llm, SessionLocal() as session:
        orchestrator = TranslationOrchestrator(
            session,
            BatchTranslator(llm, system_instructions=settings.system_instructions),
            OrchestratorConfig.from_settings(settings),
            stop_event=stop,
        )
        fn(orchestrator)


@app.command("fetch")
def fetch(
    *,
    langs: str | None = typer.Option(None, help="Comma separated target languages."),
    scope_id: int | None = typer.Option(None, help="Only fragments mapped to this scope."),
    limit: int | None = typer.Option(None, help="Max source records this run (default fetch_limit)."),
) -> None:
    """
    Queue the untranslated records and translate them now.
    """
    target_langs = _target_langs(langs)

    def _go(orchestrator: TranslationOrchestrator) -> None:
        try:
            result = orchestrator.enqueue_and_run(target_langs, scope_id=scope_id, limit=limit or settings.fetch_limit)
        except ConfigurationError as exc:
            raise typer.BadParameter(str(exc)) from exc
        if result is None:
            typer.echo("nothing to translate")
        else:
            _echo_result(result)

    _run(_go)


@app.command("enqueue")
def enqueue(
    *,
    langs: str | None = typer.Option(None, help="Comma separated target languages."),
    scope_id: int | None = typer.Option(None, help="Only fragments mapped to this scope."),
    limit: int | None = typer.Option(None, help="Max source records (default fetch_limit)."),
) -> None:
    target_langs = _target_langs(langs)
    with SessionLocal() as session:
        job = enqueue_job(session, target_langs, scope_id=scope_id, limit=limit or settings.fetch_limit)
        if job is None:
            typer.echo("nothing to translate")
            return
        job_id, total = job.job_id, job.total_entries
        session.commit()
    typer.echo(f"queued job={job_id} total={total}")


@app.command("run-job")
def run_job(job_id: str) -> None:
    _run(lambda orchestrator: _echo_result(orchestrator.run_job(job_id)))


@app.command("run-pending")
def run_pending(limit: int | None = typer.Option(None, help="Max queued jobs to run.")) -> None:
    """
    Run queued jobs oldest first, including continuations left by earlier runs.
    """

    def _go(orchestrator: TranslationOrchestrator) -> None:
        results = orchestrator.run_pending(limit=limit)
        if not results:
            typer.echo("no queued jobs")
        for result in results:
            _echo_result(result)

    _run(_go)


@app.command("job-status")
def job_status(job_id: str) -> None:
    with SessionLocal() as session:
        try:
            status = load_job_status(session, job_id)
        except LookupError as exc:
            raise typer.BadParameter(str(exc)) from exc
    typer.echo(
        f"job={status.job_id} status={status.status.value} processed={status.processed}/{status.total} "
        f"({status.percentage:.2f}%)"
    )
    if status.failure_reason:
        typer.echo(f"reason={status.failure_reason}")


@app.command("edit")
def edit(
    identifier: str,
    lang: str,
    text: str,
    *,
    machine: bool = typer.Option(False, "--machine", help="Record the edit as machine output."),
) -> None:
    """
    Set one translation by hand. Human edits count as reviewed.
    """
    if lang.lower() == SOURCE_LANG:
        raise typer.BadParameter("Use edit-source to change source text.")
    with SessionLocal() as session:
        store = TranslationStore(session)
        if store.get_source(identifier) is None:
            raise typer.BadParameter(f"Unknown identifier {identifier}")
        store.upsert(identifier, lang.lower(), text, human=not machine)
        session.commit()
    typer.echo(f"{identifier}/{lang} saved")


@app.command("set-human")
def set_human(
    identifier: str,
    lang: str,
    *,
    machine: bool = typer.Option(False, "--machine", help="Mark as machine output instead."),
) -> None:
    with SessionLocal() as session:
        try:
            TranslationStore(session).set_human(identifier, lang.lower(), not machine)
        except LookupError as exc:
            raise typer.BadParameter(str(exc)) from exc
        session.commit()
    typer.echo(f"{identifier}/{lang} human={not machine}")


@app.command("list")
def list_translations(
    *,
    lang: str | None = typer.Option(None, help="Filter by language code."),
    human: bool | None = typer.Option(None, "--human/--machine", help="Filter by provenance."),
    needs_review: bool = typer.Option(False, "--needs-review", help="Only translations awaiting review."),
    scope_id: int | None = typer.Option(None, help="Only fragments mapped to this scope."),
    page: int = typer.Option(0, help="Zero-based page."),
    per_page: int = typer.Option(20, help="Rows per page."),
    sort: str = typer.Option("identifier", help="Sort column."),
    desc: bool = typer.Option(False, "--desc", help="Sort descending."),
) -> None:
    with SessionLocal() as session:
        try:
            result = TranslationStore(session).paginate(
                page=page,
                per_page=per_page,
                lang=lang,
                human=human,
                needs_review=True if needs_review else None,
                scope_id=scope_id,
                sort=sort,
                descending=desc,
            )
        except ValueError as exc:
            raise typer.BadParameter(str(exc)) from exc
        for record in result.items:
            flag = "H" if record.human else "M"
            review = " *" if record.needs_review else ""
            typer.echo(f"{record.identifier} {record.lang:<8} {flag}{review} {record.text[:80]}")
    typer.echo(f"page {result.page} ({len(result.items)} of {result.total})")


@app.command("edit-source")
def edit_source(
    identifier: str,
    text: str,
    *,
    merge: bool = typer.Option(False, "--merge", help="Merge into an existing identifier for the same text."),
    registry_path: Path | None = typer.Option(None, "--registry", help="JSON table registry override."),
) -> None:
    """
    Change a fragment's source text, re-keying its translations and rewriting markers in content.
    """
    registry = TableRegistry.from_json_file(registry_path) if registry_path else DEFAULT_REGISTRY
    policy = ConflictPolicy.merge if merge else ConflictPolicy.reject
    with SessionLocal() as session:
        try:
            result = edit_source_flow(session, registry, identifier, text, policy=policy)
        except (LookupError, ValueError, IdentifierConflictError) as exc:
            session.rollback()
            raise typer.BadParameter(str(exc)) from exc
        session.commit()
    typer.echo(f"{result.old_identifier} -> {result.new_identifier} ({result.rewritten_fields} field(s) rewritten)")


@app.command("render")
def render(text: str, lang: str) -> None:
    """
    Print tagged content as it reads in LANG (source text where no translation exists).
    """
    with SessionLocal() as session:
        typer.echo(TranslationStore(session).render(text, lang.lower()))
