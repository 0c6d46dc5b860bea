"""
tests/test_cli.py -- Operator CLI in main.py.

The CLI is the only path to the admin role, so these tests pin down that
add-user / promote / demote change exactly the role and nothing else, and that
a pre-created account is linked (not duplicated) by the first Google login.
"""

from __future__ import annotations

import pytest

from auth.models import VerifiedIdentity
from auth.store import UserStore
from main import main


@pytest.fixture
def cli_db(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'cli.db'}"


def _run(cli_db: str, *args: str) -> int:
    return main(["--database-url", cli_db, *args])


def _store(cli_db: str) -> UserStore:
    return UserStore(db_url=cli_db)


def test_init_db_creates_schema(cli_db: str, capsys) -> None:
    assert _run(cli_db, "init-db") == 0
    store = _store(cli_db)
    try:
        assert store.count_users() == 0
    finally:
        store.close()
    assert "up to date (0 accounts)" in capsys.readouterr().out


def test_add_user_then_first_login_links(cli_db: str) -> None:
    assert _run(cli_db, "add-user", "Owner@Example.com", "--admin") == 0

    store = _store(cli_db)
    try:
        user = store.upsert_identity(
            VerifiedIdentity(subject="google-sub-owner", email="owner@example.com", name="Owner")
        )
        assert user.role == "admin"
        assert user.google_id == "google-sub-owner"
        assert store.count_users() == 1
    finally:
        store.close()


def test_add_user_twice_fails(cli_db: str, capsys) -> None:
    assert _run(cli_db, "add-user", "dup@example.com") == 0
    assert _run(cli_db, "add-user", "DUP@example.com") == 1
    assert "already exists" in capsys.readouterr().out


def test_add_user_rejects_non_email(cli_db: str) -> None:
    assert _run(cli_db, "add-user", "not-an-email") == 2


def test_promote_and_demote(cli_db: str, capsys) -> None:
    _run(cli_db, "add-user", "mod@example.com")

    assert _run(cli_db, "promote", "mod@example.com") == 0
    store = _store(cli_db)
    try:
        assert store.get_by_email("mod@example.com").role == "admin"
    finally:
        store.close()

    assert _run(cli_db, "demote", "MOD@example.com") == 0
    store = _store(cli_db)
    try:
        assert store.get_by_email("mod@example.com").role == "user"
    finally:
        store.close()
    assert "admin -> user" in capsys.readouterr().out


def test_promote_unknown_email(cli_db: str) -> None:
    assert _run(cli_db, "promote", "ghost@example.com") == 1


def test_users_lists_accounts(cli_db: str, capsys) -> None:
    _run(cli_db, "add-user", "a@example.com")
    capsys.readouterr()
    assert _run(cli_db, "users") == 0
    out = capsys.readouterr().out
    assert "a@example.com" in out
    assert "unlinked" in out
