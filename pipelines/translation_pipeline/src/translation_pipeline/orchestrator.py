from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from transtag_core.db.enums import JobState
from transtag_core.db.models import SyncJob, utcnow
from transtag_core.errors import ConfigurationError, TranstagError
from transtag_core.translations import TranslationStore
from translation_pipeline.batching import SourceItem, plan_batches
from translation_pipeline.jobs import enqueue_job, queued_jobs, transition
from translation_pipeline.llm.chat_completions import EndpointNotFoundError, RateLimitedError, TranslationApiError
from translation_pipeline.ratelimit import RequestRateLimiter
from translation_pipeline.settings import Settings
from translation_pipeline.translator import BatchTranslator, ResponseValidationError

logger = logging.getLogger(__name__)


class BatchFailedError(TranstagError):
    pass


class JobInterrupted(TranstagError):
    pass


@dataclass(frozen=True)
class OrchestratorConfig:
    batch_size: int = 10
    max_attempts: int = 3
    retry_delay_s: float = 5.0
    rate_limit_threshold: int = 50
    rate_limit_sleep_s: float = 60.0
    max_rate_limit_waits: int = 10
    max_runtime_s: float = 180.0

    @classmethod
    def from_settings(cls, s: Settings) -> "OrchestratorConfig":
        return cls(
            batch_size=s.batch_size,
            max_attempts=s.max_attempts,
            retry_delay_s=s.retry_delay_s,
            rate_limit_threshold=s.rate_limit_threshold,
            rate_limit_sleep_s=s.rate_limit_sleep_s,
            max_rate_limit_waits=s.max_rate_limit_waits,
            max_runtime_s=s.max_runtime_s,
        )


@dataclass
class JobRunResult:
    job_id: str
    status: JobState
    processed: int
    total: int
    batches: int = 0
    written: int = 0
    continuation_id: str | None = None
    failure_reason: str | None = None


class TranslationOrchestrator:
    """
    Runs queued translation jobs: batches the missing work, calls the API with retry and back-off, and
    commits each batch with the job's progress so a failure or interruption never loses finished
    batches. Work left over when the runtime budget runs out moves to a continuation job.
    """

    def __init__(
        self,
        session: Session,
        translator: BatchTranslator,
        config: OrchestratorConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        now: Callable[[], datetime] = utcnow,
        stop_event: threading.Event | None = None,
    ) -> None:
        self.session = session
        self.translator = translator
        self.config = config or OrchestratorConfig()
        self.clock = clock
        self._sleep_fn = sleep
        self.now = now
        self.stop_event = stop_event or threading.Event()
        self.limiter = RequestRateLimiter(
            self.config.rate_limit_threshold, self.config.rate_limit_sleep_s, sleep=self._sleep
        )

    def _sleep(self, seconds: float) -> None:
        if seconds > 0:
            self._sleep_fn(seconds)
        if self.stop_event.is_set():
            raise JobInterrupted("Stop requested")

    def enqueue_and_run(
        self, target_langs: list[str], *, scope_id: int | None = None, limit: int | None = None
    ) -> JobRunResult | None:
        job = enqueue_job(self.session, target_langs, scope_id=scope_id, limit=limit)
        if job is None:
            self.session.commit()
            return None
        job_id = job.job_id
        self.session.commit()
        return self.run_job(job_id)

    def run_pending(self, *, limit: int | None = None) -> list[JobRunResult]:
        job_ids = [job.job_id for job in queued_jobs(self.session, limit=limit)]
        results = []
        for job_id in job_ids:
            if self.stop_event.is_set():
                break
            results.append(self.run_job(job_id))
        return results

    def run_job(self, job_id: str) -> JobRunResult:
        job = self.session.get(SyncJob, job_id)
        if job is None:
            raise LookupError(f"No job {job_id}")
        if job.status is not JobState.queued:
            logger.info("Job %s is %s; nothing to do", job_id, job.status.value)
            return self._result(job)

        langs = list(job.target_langs)
        if not langs:
            return self._fail(job, "No target languages")
        transition(job, JobState.running)
        self.session.commit()
        started = self.clock()

        store = TranslationStore(self.session, clock=self.now)
        items = self._load_items(store, job, langs)
        batches = plan_batches(items, self.config.batch_size)
        logger.info(
            "Job %s: %d item(s) in %d batch(es) -> %s", job_id, len(items), len(batches), ",".join(langs)
        )

        written = 0
        for index, batch in enumerate(batches):
            if self.stop_event.is_set():
                return self._continue(job, batches[index:], "interrupted", written=written, done=index)
            if self.clock() - started >= self.config.max_runtime_s:
                return self._continue(job, batches[index:], "runtime budget exhausted", written=written, done=index)
            try:
                translations = self._translate_with_retry(batch, langs)
            except JobInterrupted:
                return self._continue(job, batches[index:], "interrupted", written=written, done=index)
            except (ConfigurationError, BatchFailedError) as exc:
                return self._fail(job, str(exc), written=written, done=index)

            try:
                written += self._store_batch(store, batch, translations, langs)
                done = {item.identifier for item in batch}
                job.identifiers = [i for i in job.identifiers if i not in done]
                job.processed_entries = min(job.total_entries, job.processed_entries + len(batch))
                self.session.commit()
            except SQLAlchemyError as exc:
                self.session.rollback()
                job = self.session.get(SyncJob, job_id)
                self._fail(job, f"Failed to store batch: {exc}", written=written, done=index)
                raise
            logger.info("Job %s: %d/%d processed", job_id, job.processed_entries, job.total_entries)

        transition(job, JobState.completed)
        job.identifiers = []
        self.session.commit()
        logger.info("Job %s completed: %d translation(s) written", job_id, written)
        return self._result(job, batches=len(batches), written=written)

    def _load_items(self, store: TranslationStore, job: SyncJob, langs: list[str]) -> list[SourceItem]:
        items: list[SourceItem] = []
        settled: list[str] = []
        for identifier in job.identifiers:
            source = store.get_source(identifier)
            if source is None or not store.missing_languages(identifier, langs):
                settled.append(identifier)
                continue
            items.append(SourceItem(identifier=identifier, text=source.text, scope_level=source.scope_level))
        if settled:
            # Deleted or already translated since the job was queued.
            job.identifiers = [i for i in job.identifiers if i not in set(settled)]
            job.processed_entries = min(job.total_entries, job.processed_entries + len(settled))
            self.session.commit()
        return items

    def _translate_with_retry(self, batch: list[SourceItem], langs: list[str]) -> list[dict[str, str]]:
        texts = [item.text for item in batch]
        attempts = 0
        waits = 0
        last_error = ""
        while attempts < self.config.max_attempts:
            self.limiter.before_request()
            try:
                return self.translator.translate(texts, langs)
            except RateLimitedError as exc:
                waits += 1
                if waits > self.config.max_rate_limit_waits:
                    raise BatchFailedError(f"Still rate limited after {waits - 1} wait(s): {exc}") from exc
                delay = exc.retry_after_s if exc.retry_after_s is not None else self.config.rate_limit_sleep_s
                logger.warning("Rate limited; waiting %.0fs (%d/%d)", delay, waits, self.config.max_rate_limit_waits)
                self._sleep(delay)
                continue
            except EndpointNotFoundError as exc:
                raise ConfigurationError(str(exc)) from exc
            except ResponseValidationError as exc:
                attempts += 1
                last_error = str(exc)
                logger.warning("Invalid response (attempt %d/%d): %s", attempts, self.config.max_attempts, exc)
            except TranslationApiError as exc:
                attempts += 1
                last_error = str(exc)
                logger.warning("API error (attempt %d/%d): %s", attempts, self.config.max_attempts, exc)
            if attempts < self.config.max_attempts:
                self._sleep(self.config.retry_delay_s)
        raise BatchFailedError(f"Batch failed after {attempts} attempt(s): {last_error}")

    def _store_batch(
        self,
        store: TranslationStore,
        batch: list[SourceItem],
        translations: list[dict[str, str]],
        langs: list[str],
    ) -> int:
        written = 0
        for item, translated in zip(batch, translations):
            for lang in store.missing_languages(item.identifier, langs):
                store.upsert(item.identifier, lang, translated[lang], human=False, scope_level=item.scope_level)
                written += 1
        return written

    def _continue(
        self, job: SyncJob, batches: list[list[SourceItem]], reason: str, *, written: int, done: int
    ) -> JobRunResult:
        remaining = [item.identifier for batch in batches for item in batch]
        continuation = SyncJob(
            job_id=str(uuid.uuid4()),
            target_langs=list(job.target_langs),
            scope_id=job.scope_id,
            identifiers=remaining,
            total_entries=job.total_entries,
            processed_entries=job.processed_entries,
            status=JobState.queued,
            parent_job_id=job.job_id,
        )
        self.session.add(continuation)
        job.continued_by = continuation.job_id
        job.identifiers = []
        transition(job, JobState.continued)
        self.session.commit()
        logger.info(
            "Job %s %s; %d identifier(s) re-queued as %s", job.job_id, reason, len(remaining), continuation.job_id
        )
        return self._result(job, batches=done, written=written)

    def _fail(self, job: SyncJob, reason: str, *, written: int = 0, done: int = 0) -> JobRunResult:
        transition(job, JobState.failed, reason=reason)
        self.session.commit()
        logger.error("Job %s failed: %s", job.job_id, reason)
        return self._result(job, batches=done, written=written)

    @staticmethod
    def _result(job: SyncJob, *, batches: int = 0, written: int = 0) -> JobRunResult:
        return JobRunResult(
            job_id=job.job_id,
            status=job.status,
            processed=job.processed_entries,
            total=job.total_entries,
            batches=batches,
            written=written,
            continuation_id=job.continued_by,
            failure_reason=job.failure_reason,
        )
