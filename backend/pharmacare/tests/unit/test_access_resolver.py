"""
Unit tests for AccessResolver.

Tests cover:
- Admin gets the unrestricted sentinel, never an enumerated set
- Individuals resolve to exactly themselves
- Company members resolve to the union of both stores plus self
- Lookup failures fail narrow
"""

import uuid
from unittest.mock import MagicMock

import pytest

from pharmacare.database.store import StoreUnavailableError
from pharmacare.services.access_resolver import AccessResolver, AccessScope, AccessDeniedError


@pytest.fixture
def resolver(store):
    return AccessResolver(store)


class TestAdminScope:
    """Platform admins see everything."""

    def test_admin_gets_unrestricted_scope(self, resolver, factory):
        admin = factory.user("root@pharmacare.test", role="admin")
        factory.user("someone@pharmacare.test")

        scope = resolver.resolve_accessible_ids(admin.id, "admin", None, "individual")

        assert scope.unrestricted is True
        assert scope.principal_ids == frozenset()

    def test_admin_with_company_still_unrestricted(self, resolver, factory):
        company = factory.company()
        admin = factory.user("root@pharmacare.test", role="admin", company_id=company.id)

        scope = resolver.resolve_accessible_ids(admin.id, "admin", company.id, "company")

        assert scope == AccessScope.all()

    def test_admin_does_not_touch_store(self):
        store = MagicMock()
        scope = AccessResolver(store).resolve_accessible_ids("a1", "admin")

        assert scope.unrestricted
        store.standard.assert_not_called()


class TestIndividualScope:
    """Individuals with no company only see their own records."""

    @pytest.mark.parametrize("role", ["pharmacist", "nurse", "doctor"])
    def test_individual_resolves_to_self(self, resolver, factory, role):
        user = factory.user(f"{role}@pharmacare.test", role=role)
        factory.user("other@pharmacare.test")

        scope = resolver.resolve_accessible_ids(user.id, role, None, "individual")

        assert scope.unrestricted is False
        assert scope.principal_ids == {user.id}

    def test_unknown_principal_resolves_to_self(self, resolver):
        principal_id = str(uuid.uuid4())
        scope = resolver.resolve_accessible_ids(principal_id, "pharmacist", None, "individual")

        assert scope.principal_ids == {principal_id}

    def test_company_user_without_company_fails_closed(self, resolver, factory):
        member = factory.company_user("orphan@pharmacare.test", company_id=None)

        scope = resolver.resolve_accessible_ids(member.id, "company_user", None, "company_user")

        assert scope.principal_ids == {member.id}


class TestCompanyScope:
    """Company principals see every member of their company across both stores."""

    def test_company_admin_sees_both_stores(self, resolver, factory):
        company = factory.company()
        other = factory.company()
        admin = factory.user("admin@acme.test", role="company_admin", account_type="company", company_id=company.id)
        member = factory.company_user("nurse@acme.test", company_id=company.id)
        factory.company_user("outsider@other.test", company_id=other.id)
        factory.user("solo@pharmacare.test")

        scope = resolver.resolve_accessible_ids(admin.id, "company_admin", company.id, "company")

        assert scope.principal_ids == {admin.id, member.id}

    def test_company_user_company_is_looked_up(self, resolver, factory):
        company = factory.company()
        admin = factory.user("admin@acme.test", role="company_admin", company_id=company.id)
        member = factory.company_user("nurse@acme.test", company_id=company.id)

        scope = resolver.resolve_accessible_ids(member.id, "company_user", None, "company_user")

        assert scope.principal_ids == {admin.id, member.id}

    def test_company_admin_without_declared_company_is_looked_up(self, resolver, factory):
        company = factory.company()
        admin = factory.user("admin@acme.test", role="company_admin", company_id=company.id)
        member = factory.company_user("nurse@acme.test", company_id=company.id)

        scope = resolver.resolve_accessible_ids(admin.id, "company_admin", None, "company")

        assert scope.principal_ids == {admin.id, member.id}

    def test_self_included_when_missing_from_both_stores(self, resolver, factory):
        company = factory.company()
        admin = factory.user("admin@acme.test", role="company_admin", company_id=company.id)
        member = factory.company_user("nurse@acme.test", company_id=company.id)
        unsynced_id = str(uuid.uuid4())

        scope = resolver.resolve_accessible_ids(unsynced_id, "company_user", company.id, "company_user")

        assert unsynced_id in scope.principal_ids
        assert scope.principal_ids == {admin.id, member.id, unsynced_id}

    def test_declared_company_with_no_members_still_contains_self(self, resolver):
        principal_id = str(uuid.uuid4())
        scope = resolver.resolve_accessible_ids(principal_id, "company_user", str(uuid.uuid4()), "company_user")

        assert scope.principal_ids == {principal_id}


class TestFailNarrow:
    """Lookup failures degrade to the caller's own id."""

    def test_store_failure_returns_self(self):
        store = MagicMock()
        store.standard.side_effect = StoreUnavailableError("database down")

        scope = AccessResolver(store).resolve_accessible_ids("p1", "company_user", "c1", "company_user")

        assert scope == AccessScope.of({"p1"})

    def test_query_failure_returns_self(self):
        session = MagicMock()
        session.query.side_effect = RuntimeError("connection reset")
        store = MagicMock()
        store.standard.return_value.__enter__.return_value = session

        scope = AccessResolver(store).resolve_accessible_ids("p1", "company_admin", None, "company")

        assert scope.unrestricted is False
        assert scope.principal_ids == {"p1"}


class TestAccessScope:
    """The tagged scope value used by owner-scoped handlers."""

    def test_unrestricted_apply_adds_no_filter(self):
        query = MagicMock()
        column = MagicMock()

        assert AccessScope.all().apply(query, column) is query
        query.filter.assert_not_called()
        column.in_.assert_not_called()

    def test_finite_apply_filters_by_owner(self):
        query = MagicMock()
        column = MagicMock()

        AccessScope.of({"a", "b"}).apply(query, column)

        column.in_.assert_called_once_with(frozenset({"a", "b"}))
        query.filter.assert_called_once_with(column.in_.return_value)

    def test_require_raises_for_foreign_owner(self):
        scope = AccessScope.of({"a"})

        scope.require("a")
        with pytest.raises(AccessDeniedError):
            scope.require("b")
        with pytest.raises(AccessDeniedError):
            scope.require(None)

    def test_unrestricted_permits_everything(self):
        assert AccessScope.all().permits("anyone")

    def test_to_dict(self):
        assert AccessScope.all().to_dict() == {"scope": "all", "principal_ids": None}
        assert AccessScope.of({"b", "a"}).to_dict() == {"scope": "ids", "principal_ids": ["a", "b"]}
