import logging

from chatbuddy.services.sanitize import sanitize_conversation, sanitize_metadata, sanitize_microsite
from chatbuddy.utils.log_redaction import REDACTED, RedactionFilter, redact


def test_microsite_reduced_to_host():
    assert sanitize_microsite("https://Tower-A.example.com/landing?x=1") == "tower-a.example.com"
    assert sanitize_microsite("localhost:3000") == "localhost:3000"
    assert sanitize_microsite("bad host!") is None
    assert sanitize_microsite(42) is None


def test_metadata_drops_operator_keys_and_limits_depth():
    cleaned = sanitize_metadata({"$where": 1, "__proto__": {}, "a": {"b": {"c": {"d": {"e": {"f": 1}}}}}})
    assert "$where" not in cleaned
    assert "__proto__" not in cleaned
    assert cleaned["a"]["b"]["c"]["d"]["e"] is None


def test_conversation_requires_list():
    assert sanitize_conversation("hello") == []
    assert sanitize_conversation([{"from": "user", "text": "hi"}]) == [{"from": "user", "text": "hi"}]


def test_redact_masks_secrets():
    text = redact('phone=9876543210 token: "abc" Authorization: Bearer abc.def-123 call +91 98765 43210')
    assert "9876543210" not in text
    assert "abc.def-123" not in text
    assert '"abc"' not in text
    assert REDACTED in text


def test_redaction_filter_rewrites_record():
    record = logging.LogRecord("test", logging.INFO, __file__, 1, "password=%s", ("hunter2",), None)
    assert RedactionFilter().filter(record)
    assert "hunter2" not in record.getMessage()
