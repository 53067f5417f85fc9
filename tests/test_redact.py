"""Tests for runnervm.redact: secret redaction in text and log records."""

import logging

import pytest

import runnervm.redact as redact_module
from runnervm.redact import SecretRedactingFilter, redact_secrets, register_secret


def _reset_cache():
    """Reset the module-level pattern cache so env changes take effect."""
    redact_module._patterns = None


@pytest.fixture(autouse=True)
def _clean_state():
    redact_module._runtime_secrets.clear()
    _reset_cache()
    yield
    redact_module._runtime_secrets.clear()
    _reset_cache()


# ── redact_secrets ──────────────────────────────────────────────


def test_redact_secrets_replaces_value(monkeypatch):
    monkeypatch.setenv("AZURE_CLIENT_ID", "0f1e2d3c-aaaa-bbbb-cccc-123456789abc")
    _reset_cache()

    text = "az login --identity --client-id 0f1e2d3c-aaaa-bbbb-cccc-123456789abc"
    assert redact_secrets(text) == "az login --identity --client-id ***"


def test_redact_secrets_short_values_ignored(monkeypatch):
    monkeypatch.setenv("MI_CLIENT_ID", "short")
    _reset_cache()

    text = "Value is short and should not be redacted"
    assert redact_secrets(text) == text


def test_redact_secrets_no_env_vars(monkeypatch):
    for var in redact_module._SECRET_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    _reset_cache()

    text = "Nothing secret here"
    assert redact_secrets(text) == text


def test_redact_secrets_multiple_values(monkeypatch):
    monkeypatch.setenv("AZURE_TENANT_ID", "tenant-AAAA-long")
    monkeypatch.setenv("STORAGE_ACCOUNT_PATHS", '{"eastus": "https://acct.blob"}')
    _reset_cache()

    text = 'T=tenant-AAAA-long P={"eastus": "https://acct.blob"} done'
    assert redact_secrets(text) == "T=*** P=*** done"


def test_register_secret_takes_effect_immediately():
    assert redact_secrets("pem=MIIEvQIBADANBg") == "pem=MIIEvQIBADANBg"
    register_secret("MIIEvQIBADANBg")
    assert redact_secrets("pem=MIIEvQIBADANBg") == "pem=***"


def test_register_secret_ignores_short_and_empty():
    register_secret("")
    register_secret("abc")
    assert redact_secrets("abc") == "abc"


# ── SecretRedactingFilter ───────────────────────────────────────


def test_secret_redacting_filter(monkeypatch):
    monkeypatch.setenv("AZURE_CLIENT_SECRET", "cs_FilterTestSecret99")
    _reset_cache()

    filt = SecretRedactingFilter()
    record = logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="",
        lineno=0,
        msg="Using secret cs_FilterTestSecret99",
        args=None,
        exc_info=None,
    )
    filt.filter(record)
    assert record.msg == "Using secret ***"


def test_secret_redacting_filter_with_args():
    register_secret("remote-output-secret-88")

    filt = SecretRedactingFilter()
    record = logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="",
        lineno=0,
        msg="Line: %s",
        args=("remote-output-secret-88",),
        exc_info=None,
    )
    filt.filter(record)
    assert record.args == ("***",)
