import os

# Settings are read once at import; give tests a signing key before any fxengine import
os.environ.setdefault("JWT_SECRET", "test-secret-do-not-use-in-prod")
os.environ.setdefault("INTERNAL_JOB_SECRET", "test-internal-secret")
os.environ.setdefault("ENVIRONMENT", "test")

import pytest  # noqa: E402

from fxengine.services.auth_service import create_access_token  # noqa: E402


@pytest.fixture
def admin_token():
    return create_access_token(user_id="admin-user-1", role="admin", email="admin@example.com")


@pytest.fixture
def user_token():
    return create_access_token(user_id="user-1", role="user", email="user@example.com")


@pytest.fixture
def auth_headers(user_token):
    return {"Authorization": f"Bearer {user_token}"}


@pytest.fixture
def admin_headers(admin_token):
    return {"Authorization": f"Bearer {admin_token}"}
