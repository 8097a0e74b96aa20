import pytest

from tests.oauth_helpers import FakeClock, FakeUserDirectory


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def user_directory() -> FakeUserDirectory:
    return FakeUserDirectory()


@pytest.fixture
def oauth_env(monkeypatch, tmp_path):
    monkeypatch.setenv("JWT_SECRET", "env-signing-secret-0123456789abcdef")
    monkeypatch.setenv("SUPABASE_URL", "https://project.supabase.co")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "service-role-key")
    monkeypatch.setenv("OAUTH_DATA_DIR", str(tmp_path / "data"))
    for key in (
        "JWT_EXPIRY",
        "JWT_REFRESH_EXPIRY",
        "OAUTH_CODE_TTL_SECONDS",
        "OAUTH_SWEEP_INTERVAL_SECONDS",
        "OAUTH_CORS_ORIGINS",
        "OAUTH_DIRECTORY_TIMEOUT",
        "OAUTH_DIRECTORY_MAX_RETRIES",
        "OAUTH_DIRECTORY_RATE_LIMIT_RETRIES",
    ):
        monkeypatch.delenv(key, raising=False)
    return tmp_path
