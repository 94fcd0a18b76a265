"""API test fixtures: app wired to the per-test database and the fake Stripe adapter."""

import pytest
from httpx import ASGITransport, AsyncClient

from reconciler.core.auth import AuthenticatedUser, require_auth
from reconciler.core.config import Settings


@pytest.fixture
def settings(webhook_secret) -> Settings:
    return Settings(
        debug=True,
        frontend_url="https://app.example.com",
        stripe_secret_key="sk_test_dummy",
        stripe_webhook_secret=webhook_secret,
        stripe_sync_refetch=False,
    )


@pytest.fixture
def app(settings, database, stripe_client):
    """FastAPI app with state injected directly (ASGITransport does not run the lifespan)."""
    from reconciler.main import create_app

    app = create_app(settings)
    app.state.database = database
    app.state.stripe_client = stripe_client
    app.state.shutting_down = False
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def login(app):
    """Authenticate requests as the given user by overriding require_auth."""

    def _login(user_id: str = "user_1", email: str | None = "founder@example.com", admin: bool = False):
        claims = {"sub": user_id, "email": email, "name": "Test Founder"}
        if admin:
            claims["public_metadata"] = {"admin": True}
        user = AuthenticatedUser(user_id=user_id, claims=claims)

        async def _override():
            return user

        app.dependency_overrides[require_auth] = _override
        return user

    return _login
