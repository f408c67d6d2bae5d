from __future__ import annotations

from pyboot._redact import redact_for_log


def test_redact_for_log_redacts_sensitive_keys() -> None:
    payload = {
        "endpoint": "https://api.example.test",
        "token": {"value": "SIG"},
        "Password": "pw",
        "nested": {"api_key": "deadbeef", "region": "eu"},
    }

    redacted = redact_for_log(payload)
    assert redacted["endpoint"] == "https://api.example.test"
    assert redacted["token"] == "<redacted>"
    assert redacted["Password"] == "<redacted>"
    assert redacted["nested"] == {"api_key": "<redacted>", "region": "eu"}


def test_redact_for_log_truncates_long_strings() -> None:
    long_value = "x" * 600
    redacted = redact_for_log({"value": long_value}, max_string=10)
    assert redacted["value"].startswith("x" * 10)
    assert "<truncated>" in redacted["value"]


def test_redact_for_log_caps_large_collections() -> None:
    redacted = redact_for_log(list(range(25)))

    assert redacted[:20] == list(range(20))
    assert redacted[-1] == "<5 more>"


def test_redact_for_log_uses_repr_for_objects() -> None:
    class _Connection:
        def __repr__(self) -> str:
            return "<Connection db>"

    assert redact_for_log(_Connection()) == "<Connection db>"
    assert redact_for_log(b"\x00\x01") == "<bytes:2b>"
