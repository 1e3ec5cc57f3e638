"""Unit tests for auth/store.py -- UserStore.

Covers:
- case-insensitive username lookup and uniqueness (username and email)
- role round-trips as the Role enum, never a bare string
- list_active_by_role / count_active_admins respect the enabled flag
- update_user converts role and is_active, reports missing ids
- get_many returns only existing ids
"""

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import User
from auth.roles import Role
from auth.store import UserStore


@pytest.fixture
def store():
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


def _user(username: str, role: Role = Role.DEVELOPER, email: str | None = None, active: bool = True) -> User:
    return User(
        username=username,
        email=email or f"{username.lower()}@studio.test",
        role=role,
        hashed_password="$2b$04$placeholderplaceholderplaceholderplaceholderpla",
        is_active=active,
    )


class TestLookup:
    def test_empty_store(self, store):
        assert store.has_users() is False
        assert store.get_by_username("anyone") is None

    def test_username_lookup_ignores_case(self, store):
        uid = store.create_user(_user("Alice"))
        assert store.get_by_username("ALICE").id == uid
        assert store.username_exists("alice")
        assert store.has_users() is True

    def test_email_lookup_ignores_case(self, store):
        store.create_user(_user("bob", email="Bob@Studio.test"))
        assert store.email_exists("bob@studio.TEST")
        assert not store.email_exists("robert@studio.test")

    def test_role_is_enum(self, store):
        uid = store.create_user(_user("carol", Role.PROJECT_LEAD))
        user = store.get_by_id(uid)
        assert user.role is Role.PROJECT_LEAD
        assert user.created_at

    def test_get_many(self, store):
        a = store.create_user(_user("a1"))
        b = store.create_user(_user("b1"))
        found = store.get_many([a, b, 999])
        assert set(found) == {a, b}
        assert store.get_many([]) == {}


class TestUniqueness:
    def test_duplicate_username_any_case(self, store):
        store.create_user(_user("dave"))
        with pytest.raises(IntegrityError):
            store.create_user(_user("DAVE", email="other@studio.test"))

    def test_duplicate_email_any_case(self, store):
        store.create_user(_user("erin", email="erin@studio.test"))
        with pytest.raises(IntegrityError):
            store.create_user(_user("erin2", email="ERIN@studio.test"))


class TestRoleQueries:
    def test_list_active_by_role(self, store):
        store.create_user(_user("dev-b"))
        store.create_user(_user("dev-a"))
        store.create_user(_user("dev-off", active=False))
        store.create_user(_user("lead", Role.PROJECT_LEAD))
        names = [u.username for u in store.list_active_by_role(Role.DEVELOPER)]
        assert names == ["dev-a", "dev-b"]

    def test_count_active_admins(self, store):
        first = store.create_user(_user("root", Role.ADMIN))
        store.create_user(_user("root2", Role.ADMIN, active=False))
        assert store.count_active_admins() == 1
        store.update_user(first, is_active=False)
        assert store.count_active_admins() == 0


class TestWrites:
    def test_update_role_and_flag(self, store):
        uid = store.create_user(_user("frank"))
        assert store.update_user(uid, role=Role.PROJECT_LEAD, is_active=False) is True
        user = store.get_by_id(uid)
        assert user.role is Role.PROJECT_LEAD
        assert user.is_active is False

    def test_update_role_from_string(self, store):
        uid = store.create_user(_user("gina"))
        store.update_user(uid, role="ADMIN")
        assert store.get_by_id(uid).role is Role.ADMIN

    def test_update_missing_user(self, store):
        assert store.update_user(12345, is_active=True) is False

    def test_update_last_login(self, store):
        uid = store.create_user(_user("hank"))
        assert store.get_by_id(uid).last_login is None
        store.update_last_login(uid)
        assert store.get_by_id(uid).last_login is not None

    def test_list_users_sorted(self, store):
        for name in ("zed", "amy", "kim"):
            store.create_user(_user(name))
        assert [u.username for u in store.list_users()] == ["amy", "kim", "zed"]
