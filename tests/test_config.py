from pathlib import Path

import pytest

from billing.config import Config

REQUIRED = {
    "DATABASE_URL": "postgresql://localhost/billing",
    "SERVICE_DOMAIN": "example.com",
    "PROVISIONING_URL": "http://worker:4100/commands/",
}


@pytest.fixture
def env(monkeypatch):
    for name, value in REQUIRED.items():
        monkeypatch.setenv(name, value)
    for name in ("AUTO_TERMINATE_AFTER_GRACE", "CHIA_ROOT", "LOG_LEVEL", "SMTP_USE_TLS"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_from_env_defaults(env):
    config = Config.from_env()

    assert config.provisioning_url == "http://worker:4100/commands"
    assert config.auto_terminate_after_grace is False
    assert config.chia_wallet_url == "https://localhost:9256"
    assert config.chia_cert_file.name == "private_wallet.crt"
    assert config.invoice_url("abc") == "https://app.example.com/invoices/abc"


def test_from_env_overrides(env):
    env.setenv("AUTO_TERMINATE_AFTER_GRACE", "True")
    env.setenv("CHIA_ROOT", "/srv/chia")
    env.setenv("LOG_LEVEL", "debug")

    config = Config.from_env()

    assert config.auto_terminate_after_grace is True
    assert config.chia_root == Path("/srv/chia")
    assert config.log_level == "DEBUG"


@pytest.mark.parametrize("missing", sorted(REQUIRED))
def test_missing_required_variable(env, missing):
    env.delenv(missing)

    with pytest.raises(ValueError, match=missing):
        Config.from_env()


def test_rejects_unknown_log_level(env):
    env.setenv("LOG_LEVEL", "chatty")

    with pytest.raises(ValueError):
        Config.from_env()
