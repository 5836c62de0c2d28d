"""
Fixtures for HTTP-level tests.

The app runs without its lifespan; store, settings and gateway are
injected through dependency overrides.
"""

import pytest
from fastapi.testclient import TestClient

from main import app as fastapi_app
from pharmacare.api.dependencies.services import get_settings, get_gateway
from pharmacare.auth.session_token import SessionTokenCodec
from pharmacare.database.session import get_store_capabilities


@pytest.fixture
def app(store, settings, gateway):
    fastapi_app.dependency_overrides[get_store_capabilities] = lambda: store
    fastapi_app.dependency_overrides[get_settings] = lambda: settings
    fastapi_app.dependency_overrides[get_gateway] = lambda: gateway
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def auth_headers(settings):
    """Build bearer headers for a principal row."""
    codec = SessionTokenCodec(settings)

    def _headers(row, account_kind=None, company_id=None):
        token = codec.encode(
            user_id=row.id,
            email=row.email,
            role=row.role,
            account_kind=account_kind or row.account_type,
            company_id=company_id if company_id is not None else row.company_id,
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers
