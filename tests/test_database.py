import pytest

from quotedesk import database
from quotedesk.database import get_db_context
from quotedesk.db_models import Lead


def test_context_commits_on_success(db) -> None:
    with get_db_context() as session:
        session.add(Lead(customer_name="Asha Rao", phone="9845000001"))

    with get_db_context() as session:
        assert session.query(Lead).count() == 1


def test_context_rolls_back_on_error(db) -> None:
    with pytest.raises(RuntimeError):
        with get_db_context() as session:
            session.add(Lead(customer_name="Asha Rao", phone="9845000001"))
            session.flush()
            raise RuntimeError("abort")

    with get_db_context() as session:
        assert session.query(Lead).count() == 0


def test_sessions_only_come_from_the_context_manager() -> None:
    assert not hasattr(database, "get_db")
