"""Tests for secret redaction in logs and payloads."""

import orjson
import pytest

from antigravity_manager.utils.masking import (
    REDACTED,
    mask_sensitive_data,
    mask_sensitive_processor,
    mask_string,
)


@pytest.mark.unit
def test_masks_sensitive_keys_recursively() -> None:
    data = {
        "email": "a@example.com",
        "token": {"access_token": "ya29.abc"},
        "accounts": [{"refresh_token": "1//xyz", "id": "a"}],
        "Client-Secret": "shh",
        "empty_password": "",
        "password": "",
    }

    masked = mask_sensitive_data(data)

    assert masked["email"] == "a@example.com"
    assert masked["token"] == REDACTED
    assert masked["accounts"] == [{"refresh_token": REDACTED, "id": "a"}]
    assert masked["Client-Secret"] == REDACTED
    assert masked["password"] == ""


@pytest.mark.unit
def test_masks_json_strings() -> None:
    payload = orjson.dumps({"access_token": "ya29.abc", "expires_in": 3600}).decode()

    masked = orjson.loads(mask_sensitive_data(payload))

    assert masked == {"access_token": REDACTED, "expires_in": 3600}


@pytest.mark.unit
@pytest.mark.parametrize(
    ("text", "secret"),
    [
        ("Authorization: Bearer ya29.a0AfH6SM", "ya29.a0AfH6SM"),
        ("refresh failed for ya29.a0AfH6SMxyz", "ya29.a0AfH6SMxyz"),
        ("token 1//0gLongRefreshTokenValue", "1//0gLongRefreshTokenValue"),
    ],
)
def test_mask_string(text: str, secret: str) -> None:
    masked = mask_string(text)

    assert secret not in masked
    assert REDACTED in masked


@pytest.mark.unit
def test_leaves_ordinary_fields_alone() -> None:
    data = {"code": "auth_tag_mismatch", "key": "token-abc", "count": 3}
    assert mask_sensitive_data(data) == data


@pytest.mark.unit
def test_processor_masks_event_and_fields() -> None:
    event = mask_sensitive_processor(
        None,
        "info",
        {"event": "sent Bearer abc.def", "refresh_token": "1//secret", "level": "info"},
    )

    assert event["event"] == f"sent Bearer {REDACTED}"
    assert event["refresh_token"] == REDACTED
    assert event["level"] == "info"
