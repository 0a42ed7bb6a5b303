"""Shared fixtures: in-memory SQLite engines standing in for the production database."""
import pytest
from sqlalchemy import create_engine, event, text
from sqlalchemy.pool import StaticPool


def explode(n):
    """SQL function that fails from the third row on, to break a cursor mid-iteration."""
    if n >= 3:
        raise ValueError("boom")
    return n


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def register_functions(dbapi_conn, connection_record):
        dbapi_conn.create_function("explode", 1, explode)

    with engine.begin() as conn:
        conn.execute(text("CREATE TABLE users (id INTEGER PRIMARY KEY, status TEXT, region TEXT)"))
        conn.execute(text(
            "INSERT INTO users (status, region) VALUES "
            "('active', 'us'), ('active', 'us'), ('active', 'eu'), ('inactive', NULL)"
        ))
        conn.execute(text("CREATE TABLE nums (n INTEGER)"))
        conn.execute(text("INSERT INTO nums (n) VALUES (1), (2), (3), (4), (5)"))
        conn.execute(text("CREATE TABLE tags (tag BLOB, amount INTEGER)"))
        conn.execute(
            text("INSERT INTO tags (tag, amount) VALUES (:a, 1), (:b, 2), (:c, 3)"),
            {"a": b"alpha", "b": b"\xff\xfe", "c": b"gamma"},
        )

    yield engine
    engine.dispose()
