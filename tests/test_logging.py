import pytest

from leadkit.config.logging import _mask_addresses, redact_email


@pytest.mark.parametrize(
    "value,expected",
    [
        ("jo@example.com", "j***@example.com"),
        ("a@example.com", "***"),
        ("not-an-address", "***"),
        ("", ""),
        (None, ""),
    ],
)
def test_redact_email(value, expected):
    assert redact_email(value) == expected


def test_address_keys_are_masked():
    event = _mask_addresses(
        None,
        "info",
        {
            "event": "SMTP send attempt",
            "reply_to": "jo@example.com",
            "recipients": ["owner@example.com"],
            "sender": "leads@example.com",
        },
    )

    assert event["reply_to"] == "j***@example.com"
    assert event["recipients"] == ["o***@example.com"]
    assert event["sender"] == "l***@example.com"
