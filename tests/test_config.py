import pytest

from config import ConfigError, Settings


@pytest.fixture
def env(monkeypatch, tmp_path):
    for name in ("MONGODB_URI", "DATABASE_URL", "JWT_SECRET", "DATABASE_NAME", "PORT", "PUBLIC_DIR", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path / "missing.env"


def test_from_env(monkeypatch, env):
    monkeypatch.setenv("MONGODB_URI", "mongodb://db:27017")
    monkeypatch.setenv("JWT_SECRET", "s3cret")
    monkeypatch.setenv("PORT", "8080")
    settings = Settings.from_env(str(env))
    assert settings.database_url == "mongodb://db:27017"
    assert settings.jwt_secret == "s3cret"
    assert settings.port == 8080
    assert settings.database_name == "shop"
    assert settings.token_ttl.total_seconds() == 3600


def test_dotenv_file_is_read(env):
    env.write_text("MONGODB_URI=mongodb://file:27017\nJWT_SECRET=from-file\n")
    settings = Settings.from_env(str(env))
    assert settings.jwt_secret == "from-file"


@pytest.mark.parametrize("present", [{"JWT_SECRET": "x"}, {"MONGODB_URI": "mongodb://db"}])
def test_missing_required_setting(monkeypatch, env, present):
    for name, value in present.items():
        monkeypatch.setenv(name, value)
    with pytest.raises(ConfigError):
        Settings.from_env(str(env))
