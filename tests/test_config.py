"""Unit tests for core/config.py -- Settings and the SECRET_KEY policy."""

import pytest
from pydantic import ValidationError

from core.config import Settings

GOOD_KEY = "k" * 32


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for name in ("SECRET_KEY", "DEBUG", "BCRYPT_ROUNDS", "LOGIN_RATE_LIMIT"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestSecretKeyPolicy:
    def test_missing_key_in_production_fails(self, clean_env: pytest.MonkeyPatch) -> None:
        with pytest.raises(ValidationError, match="SECRET_KEY is required"):
            Settings(_env_file=None)

    def test_missing_key_in_debug_is_generated(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("DEBUG", "true")
        settings = Settings(_env_file=None)
        assert len(settings.secret_key) >= 32

    def test_short_key_rejected(self, clean_env: pytest.MonkeyPatch) -> None:
        with pytest.raises(ValidationError, match="at least 32"):
            Settings(_env_file=None, debug=True, secret_key="too-short")

    def test_key_from_environment(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("SECRET_KEY", GOOD_KEY)
        assert Settings(_env_file=None).secret_key == GOOD_KEY

    def test_key_hidden_from_repr(self, clean_env: pytest.MonkeyPatch) -> None:
        assert GOOD_KEY not in repr(Settings(_env_file=None, secret_key=GOOD_KEY))


class TestFields:
    def test_defaults(self, clean_env: pytest.MonkeyPatch) -> None:
        settings = Settings(_env_file=None, secret_key=GOOD_KEY)
        assert settings.jwt_algorithm == "HS256"
        assert settings.token_expire_seconds == 3600
        assert settings.bcrypt_rounds == 12
        assert settings.self_registration_enabled is True

    def test_env_overrides(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("SECRET_KEY", GOOD_KEY)
        clean_env.setenv("BCRYPT_ROUNDS", "10")
        clean_env.setenv("SELF_REGISTRATION_ENABLED", "false")
        settings = Settings(_env_file=None)
        assert settings.bcrypt_rounds == 10
        assert settings.self_registration_enabled is False

    @pytest.mark.parametrize("rounds", [3, 32])
    def test_bcrypt_rounds_bounds(self, clean_env: pytest.MonkeyPatch, rounds: int) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, secret_key=GOOD_KEY, bcrypt_rounds=rounds)

    def test_non_positive_ttl_rejected(self, clean_env: pytest.MonkeyPatch) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, secret_key=GOOD_KEY, token_expire_seconds=0)

    def test_frozen(self, clean_env: pytest.MonkeyPatch) -> None:
        settings = Settings(_env_file=None, secret_key=GOOD_KEY)
        with pytest.raises(ValidationError):
            settings.debug = True
