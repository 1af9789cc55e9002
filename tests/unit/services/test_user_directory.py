"""Tests for approver resolution."""

from uuid import uuid4

import pytest

from formflow.services.directory import UserDirectory
from tests.factories import create_user

pytestmark = pytest.mark.db


def test_resolves_only_active_users(db_session):
    active = create_user(db_session)
    inactive = create_user(db_session, is_active=False)
    missing = uuid4()

    resolved = UserDirectory().resolve_active_users(db_session, [active.id, inactive.id, missing])

    assert resolved == {active.id}


def test_duplicates_resolve_once(db_session):
    user = create_user(db_session)
    assert UserDirectory().resolve_active_users(db_session, [user.id, user.id]) == {user.id}


def test_empty_input(db_session):
    assert UserDirectory().resolve_active_users(db_session, []) == set()
