"""Test configuration and fixtures."""

from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from action_board.access import Actor
from action_board.api import app
from action_board.board.schemas import BoardCreate, ColumnSpec
from action_board.board.services import BoardService, TeamService
from action_board.db import audit_models, models  # noqa: F401
from action_board.db.base import Base, build_engine, get_db
from action_board.events import ChangeDispatcher, RefreshLimiter, get_dispatcher

ADMIN = Actor(id="admin-1", is_admin=True)


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms / 1000.0


@pytest.fixture
def engine():
    """Fresh in-memory database for each test."""
    engine = build_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def dispatcher(clock) -> ChangeDispatcher:
    return ChangeDispatcher(limiter=RefreshLimiter(window_ms=1000, clock=clock))


@pytest.fixture
def published(dispatcher):
    """Every event published during the test, in order."""
    events = []
    dispatcher.subscribe(None, None, events.append)
    return events


@pytest.fixture
def client(session_factory, dispatcher) -> Generator[TestClient, None, None]:
    """API client bound to the per-test database and dispatcher.

    Not entered as a context manager, so the lifespan (which initializes the
    configured database) does not run.
    """

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def teams(db_session):
    """Three teams: sales, support and billing."""
    service = TeamService(db_session)
    return {
        name: service.create(name.title(), team_id=f"team-{name}")
        for name in ("sales", "support", "billing")
    }


@pytest.fixture
def board_service(db_session, dispatcher) -> BoardService:
    return BoardService(db_session, dispatcher=dispatcher)


@pytest.fixture
def board(board_service, teams):
    """An org-visible board with the default columns."""
    return board_service.create_board(BoardCreate(name="Sales Pipeline"), ADMIN)


@pytest.fixture
def team_board(board_service, teams):
    """A team-only board whose default team is support."""
    return board_service.create_board(
        BoardCreate(
            name="Support Queue",
            visibility="team",
            default_team_id="team-support",
            card_type="case",
            initial_columns=[ColumnSpec(name="New"), ColumnSpec(name="Working", wip_limit=2)],
        ),
        ADMIN,
    )


def column_ids(board_service: BoardService, board_id: str):
    return [c.id for c in board_service.column_ledger.siblings(board_id)]
