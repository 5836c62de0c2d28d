"""
Integration tests for company, admin and access-scope routes.

Tests cover:
- Role gates
- Company member management
- Principal approval
- Access scope per role and company
"""

import pytest

from pharmacare.models import CompanyUser, User


@pytest.mark.integration
class TestCompanyRoutes:
    """/api/company/users"""

    def test_requires_company_admin(self, client, factory, auth_headers):
        user = factory.user("solo@pharmacare.test")

        response = client.get("/api/company/users", headers=auth_headers(user))

        assert response.status_code == 403

    def test_add_list_remove(self, client, factory, auth_headers):
        company = factory.company()
        admin = factory.user("admin@acme.test", role="company_admin", account_type="company", company_id=company.id)
        headers = auth_headers(admin)

        created = client.post("/api/company/users", json={
            "email": "nurse@acme.test",
            "password": "s3cret-pass",
            "full_name": "Nurse",
        }, headers=headers)
        listed = client.get("/api/company/users", headers=headers)

        assert created.status_code == 201
        member_id = created.json()["user"]["id"]
        assert {u["email"] for u in listed.json()["users"]} == {"admin@acme.test", "nurse@acme.test"}

        removed = client.delete(f"/api/company/users/{member_id}", headers=headers)

        assert removed.status_code == 200
        assert factory.count(CompanyUser, id=member_id) == 0

    def test_list_after_member_login(self, client, factory, auth_headers):
        company = factory.company()
        admin = factory.user("admin@acme.test", role="company_admin", account_type="company", company_id=company.id)
        member = factory.company_user("nurse@acme.test", company_id=company.id)
        client.post("/api/auth/login", json={"email": "nurse@acme.test", "password": "correct-horse"})
        assert factory.count(User, id=member.id) == 1

        listed = client.get("/api/company/users", headers=auth_headers(admin))

        users = listed.json()["users"]
        assert [u["email"] for u in users] == ["admin@acme.test", "nurse@acme.test"]
        assert users[1]["store"] == "company_scoped"

    def test_duplicate_member_email(self, client, factory, auth_headers):
        company = factory.company()
        admin = factory.user("admin@acme.test", role="company_admin", company_id=company.id)

        response = client.post("/api/company/users", json={
            "email": "admin@acme.test",
            "password": "s3cret-pass",
            "full_name": "Dup",
        }, headers=auth_headers(admin))

        assert response.status_code == 409

    def test_remove_outside_company(self, client, factory, auth_headers):
        company = factory.company()
        admin = factory.user("admin@acme.test", role="company_admin", company_id=company.id)
        outsider = factory.company_user("nurse@other.test", company_id=factory.company().id)

        response = client.delete(f"/api/company/users/{outsider.id}", headers=auth_headers(admin))

        assert response.status_code == 404


@pytest.mark.integration
class TestAdminRoutes:
    """/api/admin/principals"""

    def test_requires_admin(self, client, factory, auth_headers):
        company = factory.company()
        company_admin = factory.user("admin@acme.test", role="company_admin", company_id=company.id)
        pending = factory.user("pending@pharmacare.test", approved=False)

        response = client.post(f"/api/admin/principals/{pending.id}/approve", headers=auth_headers(company_admin))

        assert response.status_code == 403

    def test_approve_and_reject(self, client, factory, auth_headers):
        root = factory.user("root@pharmacare.test", role="admin")
        pending = factory.user("pending@pharmacare.test", approved=False)
        rejected = factory.user("spam@pharmacare.test", approved=False)
        headers = auth_headers(root)

        approved = client.post(f"/api/admin/principals/{pending.id}/approve", headers=headers)
        deleted = client.delete(f"/api/admin/principals/{rejected.id}", headers=headers)
        missing = client.post("/api/admin/principals/missing/approve", headers=headers)

        assert approved.status_code == 200
        assert approved.json()["user"]["approved"] is True
        assert deleted.status_code == 200
        assert factory.count(User, id=rejected.id) == 0
        assert missing.status_code == 404


@pytest.mark.integration
class TestAccessScopeRoute:
    """GET /api/access/scope"""

    def test_admin_unrestricted(self, client, factory, auth_headers):
        root = factory.user("root@pharmacare.test", role="admin")

        response = client.get("/api/access/scope", headers=auth_headers(root))

        assert response.json() == {"success": True, "scope": "all", "principal_ids": None}

    def test_company_member_sees_colleagues(self, client, factory, auth_headers):
        company = factory.company()
        admin = factory.user("admin@acme.test", role="company_admin", company_id=company.id)
        member = factory.company_user("nurse@acme.test", company_id=company.id)
        factory.company_user("nurse@other.test", company_id=factory.company().id)

        response = client.get("/api/access/scope", headers=auth_headers(member))

        assert response.json()["principal_ids"] == sorted([admin.id, member.id])

    def test_individual_sees_self(self, client, factory, auth_headers):
        user = factory.user("solo@pharmacare.test")

        response = client.get("/api/access/scope", headers=auth_headers(user))

        assert response.json()["principal_ids"] == [user.id]

    def test_health_needs_no_store(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"
