# tests/test_init.py
"""
Tests for session management and logging setup.
"""
import logging

import pytest
from sqlalchemy.orm import sessionmaker

import init
from models import User


@pytest.fixture
def scoped_factory(engine, monkeypatch):
    factory = sessionmaker(bind=engine)
    monkeypatch.setattr(init, "Session", factory)
    return factory


def _user(email):
    return User(name="Scoped", email=email, referralCode=email[:6].upper())


def test_session_scope_commits(scoped_factory):
    with init.session_scope() as session:
        session.add(_user("commit@example.com"))

    check = scoped_factory()
    assert check.query(User).filter_by(email="commit@example.com").count() == 1
    check.close()


def test_session_scope_rolls_back_and_reraises(scoped_factory):
    with pytest.raises(RuntimeError):
        with init.session_scope() as session:
            session.add(_user("rollback@example.com"))
            session.flush()
            raise RuntimeError("abort")

    check = scoped_factory()
    assert check.query(User).filter_by(email="rollback@example.com").count() == 0
    check.close()


def test_setup_logging_quiets_sqlalchemy():
    init.setup_logging()

    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
