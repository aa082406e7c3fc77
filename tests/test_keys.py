import pytest

from infrastructure.external.storage.exceptions import InvalidKeyError
from infrastructure.external.storage.keys import MAX_KEY_BYTES, sanitize_key


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("report.pdf", "report.pdf"),
        ("/report.pdf", "report.pdf"),
        ("docs/2024/q1-summary_v2.PDF", "docs/2024/q1-summary_v2.PDF"),
        ("folder/", "folder/"),
        ("a" * MAX_KEY_BYTES, "a" * MAX_KEY_BYTES),
    ],
)
def test_accepts_allowed_keys(raw, expected):
    assert sanitize_key(raw) == expected


@pytest.mark.parametrize(
    "raw",
    [
        "",
        None,
        "/",
        "../etc/passwd",
        "docs/../secret.txt",
        "docs//file.txt",
        "//evil.example.com/x",
        "a" * (MAX_KEY_BYTES + 1),
        "with space.txt",
        "semi;colon",
        "percent%2F",
        "unicodé.txt",
        "back\\slash",
    ],
)
def test_rejects_invalid_keys(raw):
    with pytest.raises(InvalidKeyError):
        sanitize_key(raw)


def test_rejection_carries_operation():
    with pytest.raises(InvalidKeyError) as exc_info:
        sanitize_key("../x", operation="delete_object")
    assert exc_info.value.operation == "delete_object"
    assert exc_info.value.message_key == "storage.invalid_key"


def test_leading_slash_is_stripped():
    assert sanitize_key("/a/b.txt") == "a/b.txt"
