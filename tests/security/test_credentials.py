import hashlib

import pytest
from pydantic import SecretStr, ValidationError

from celine.access.core.config import Settings
from celine.access.security.credentials import SessionCredentials, SettingsCredentials
from celine.access.security.models import AuthorizationContext


# ----------------------------------------------------------------------
# AuthorizationContext
# ----------------------------------------------------------------------


def test_api_key_is_hidden():
    ctx = AuthorizationContext(endpoint="https://api.example.org", api_key=SecretStr("s3cr3t"))

    assert "s3cr3t" not in repr(ctx)
    assert "s3cr3t" not in str(ctx)
    assert "s3cr3t" not in str(ctx.model_dump())


def test_endpoint_is_normalized():
    ctx = AuthorizationContext(endpoint=" https://api.example.org/ ", api_key=SecretStr("k"))

    assert ctx.endpoint == "https://api.example.org"
    assert ctx.manifest_url == "https://api.example.org/manifest"


def test_empty_endpoint_is_rejected():
    with pytest.raises(ValidationError):
        AuthorizationContext(endpoint="  /", api_key=SecretStr("k"))


def test_credential_id_is_a_digest():
    ctx = AuthorizationContext(endpoint="https://x", api_key=SecretStr("k"))

    assert ctx.credential_id == hashlib.sha256(b"k").hexdigest()
    assert len(ctx.credential_id) == 64


def test_context_is_immutable():
    ctx = AuthorizationContext(endpoint="https://x", api_key=SecretStr("k"))

    with pytest.raises(ValidationError):
        ctx.endpoint = "https://y"  # type: ignore[misc]


# ----------------------------------------------------------------------
# Providers
# ----------------------------------------------------------------------


def test_session_credentials_lifecycle(context):
    creds = SessionCredentials()
    assert creds.lookup_current_authorization() is None

    creds.set(context)
    assert creds.lookup_current_authorization() is context

    creds.clear()
    assert creds.lookup_current_authorization() is None


def test_settings_credentials():
    cfg = Settings(api_url="https://api.example.org", api_key=SecretStr("abc"))

    ctx = SettingsCredentials(cfg).lookup_current_authorization()

    assert ctx is not None
    assert ctx.endpoint == "https://api.example.org"
    assert ctx.api_key.get_secret_value() == "abc"


@pytest.mark.parametrize(
    "api_url, api_key",
    [(None, "abc"), ("https://api.example.org", None), ("https://api.example.org", "")],
)
def test_settings_credentials_incomplete(api_url, api_key):
    cfg = Settings(api_url=api_url, api_key=SecretStr(api_key) if api_key is not None else None)

    assert SettingsCredentials(cfg).lookup_current_authorization() is None
