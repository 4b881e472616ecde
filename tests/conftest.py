from __future__ import annotations

import json
from datetime import datetime, timedelta

import pytest
from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, insert
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from transtag_core.db.base import Base
from transtag_core.db import models  # noqa: F401  (registers tables on Base.metadata)
from transtag_core.scopes import ScopeMapper
from transtag_core.translations import TranslationStore
from translation_pipeline.llm.client import LLMResponse

host_metadata = MetaData()


def _table(name: str, *columns: Column) -> Table:
    return Table(name, host_metadata, Column("id", Integer, primary_key=True), *columns)


_table("course", Column("fullname", String(255)), Column("shortname", String(255)), Column("summary", Text))
_table("course_sections", Column("course", Integer), Column("name", String(255)), Column("summary", Text))
_table("course_categories", Column("name", String(255)), Column("description", Text))
_table("modules", Column("name", String(64)))
_table("course_modules", Column("course", Integer), Column("module", Integer), Column("instance", Integer))
_table("forum", Column("course", Integer), Column("name", String(255)), Column("intro", Text))
_table("forum_discussions", Column("forum", Integer), Column("name", String(255)))
_table("forum_posts", Column("discussion", Integer), Column("subject", String(255)), Column("message", Text))
_table("quiz", Column("course", Integer), Column("name", String(255)), Column("intro", Text))
_table("quiz_slots", Column("quizid", Integer), Column("slot", Integer))
_table("question", Column("name", String(255)), Column("questiontext", Text), Column("generalfeedback", Text))
_table("question_versions", Column("questionid", Integer), Column("questionbankentryid", Integer))
_table(
    "question_references",
    Column("questionbankentryid", Integer),
    Column("component", String(64)),
    Column("questionarea", String(64)),
    Column("itemid", Integer),
)
_table("question_answers", Column("question", Integer), Column("answer", Text), Column("feedback", Text))


class FakeClock:
    """Deterministic, strictly increasing timestamps."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2026, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _no_implicit_transactions(dbapi_connection, connection_record):
        # pysqlite manages BEGIN itself, which breaks SAVEPOINT; let SQLAlchemy emit it.
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    host_metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session(engine) -> Session:
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    with factory() as session:
        yield session


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def store(session, clock) -> TranslationStore:
    return TranslationStore(session, clock=clock)


@pytest.fixture()
def mapper(session) -> ScopeMapper:
    return ScopeMapper(session)


def add_rows(session: Session, table: str, *rows: dict) -> None:
    session.execute(insert(host_metadata.tables[table]), list(rows))
    session.commit()


def host_row(session: Session, table: str, row_id: int) -> dict:
    t = host_metadata.tables[table]
    return dict(session.execute(t.select().where(t.c.id == row_id)).one()._mapping)


def translated(schema: dict) -> list[dict[str, str]]:
    """A well-formed batch response for whatever the schema asks for."""
    langs = schema["items"]["required"]
    return [{lang: f"{lang}-{idx}" for lang in langs} for idx in range(schema["minItems"])]


class ScriptedLLM:
    """
    LLM double replaying `steps` in order: exceptions are raised, callables receive the request schema,
    anything else is returned as the parsed JSON body.
    """

    def __init__(self, *steps) -> None:
        self.steps = list(steps)
        self.calls: list[dict] = []

    def complete_json(self, *, system: str, prompt: str, schema: dict) -> LLMResponse:
        self.calls.append({"system": system, "prompt": prompt, "schema": schema})
        step = self.steps.pop(0)
        if isinstance(step, Exception):
            raise step
        if callable(step):
            step = step(schema)
        return LLMResponse(raw_text=json.dumps(step), json=step, model_name="fake")
