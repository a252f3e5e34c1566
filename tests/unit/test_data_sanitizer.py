from __future__ import annotations

from core.infrastructure.factory import get_data_sanitizer


def test_sensitive_payload_keys_are_masked():
    sanitizer = get_data_sanitizer()

    sanitized = sanitizer.sanitize_for_logging(
        {
            "courseTitle": "Calculus I",
            "transactionId": "txn-1",
            "joinUrl": "https://meet.example/abc",
            "nested": {"apiKey": "k", "amount": 5000},
        }
    )

    assert sanitized == {
        "courseTitle": "Calculus I",
        "transactionId": "***MASKED***",
        "joinUrl": "***MASKED***",
        "nested": {"apiKey": "***MASKED***", "amount": 5000},
    }


def test_emails_and_url_tokens_are_masked_in_text():
    sanitizer = get_data_sanitizer()

    text = sanitizer.sanitize_for_logging(
        "mail ada.lovelace@example.com via https://meet.example/j?token=abc&room=7"
    )

    assert "a**********e@example.com" in text
    assert "token=***MASKED***" in text
    assert "room=7" in text


def test_sanitizer_is_shared():
    assert get_data_sanitizer() is get_data_sanitizer()
