"""Tests for settings loading and production safety checks."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from saleproof.core.config import Settings, get_settings
from saleproof.core.crypto.signing import generate_signing_keypair


def test_env_prefix(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SALEPROOF_ANCHOR_URL", "https://anchor.example.com")
    monkeypatch.setenv("SALEPROOF_AUDIT_BATCH_SIZE", "25")
    get_settings.cache_clear()

    settings = get_settings()

    assert settings.anchor_url == "https://anchor.example.com"
    assert settings.audit_batch_size == 25


def test_settings_are_cached() -> None:
    assert get_settings() is get_settings()


def test_development_without_key_warns() -> None:
    with pytest.warns(UserWarning, match="unsigned"):
        Settings(environment="development", audit_signing_key="")


@pytest.mark.parametrize("environment", ["staging", "production"])
def test_production_requires_signing_key(environment: str) -> None:
    with pytest.raises(ValidationError, match="audit_signing_key"):
        Settings(environment=environment, audit_signing_key="")


def test_production_rejects_debug() -> None:
    private_pem, _ = generate_signing_keypair()
    with pytest.raises(ValidationError, match="debug"):
        Settings(environment="production", audit_signing_key=private_pem, debug=True)


def test_production_with_key() -> None:
    private_pem, _ = generate_signing_keypair()
    settings = Settings(environment="production", audit_signing_key=private_pem)
    assert settings.audit_signing_key == private_pem


def test_batch_size_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        Settings(audit_batch_size=0, audit_signing_key="x")
