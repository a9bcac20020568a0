from artifactscope.core.heuristics import (
    count_media_signatures,
    has_sqlite_signature,
    search_for_contacts,
    search_for_messages,
)


def test_message_keywords_overlap_and_ignore_case() -> None:
    assert search_for_messages(b"SMS sms Sms") == 3
    # "messages" holds "message" and "sms" is not in it; "sent" appears in "present".
    assert search_for_messages(b"messages present") == 2


def test_message_window() -> None:
    assert search_for_messages(b"chat" * 4, window=8) == 2


def test_contacts_are_deduplicated() -> None:
    text = b"alice@example.com, bob@example.org, alice@example.com, call 555-123-4567 or 555-123-4567"
    assert search_for_contacts(text) == 3


def test_media_signatures() -> None:
    jpeg = b"\xFF\xD8\xFF\xE0"
    png = b"\x89PNG\r\n\x1a\n"
    assert count_media_signatures(jpeg + bytes(10) + png + bytes(10)) == 2
    # Too close to the end to be a real file.
    assert count_media_signatures(bytes(10) + b"\xFF\xD8\xFF") == 0


def test_sqlite_signature() -> None:
    assert has_sqlite_signature(b"junk SQLite format 3\x00 more")
    assert not has_sqlite_signature(b"SQLite format 2")
