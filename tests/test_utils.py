from __future__ import annotations

import uuid

from happenings.utils import clean_optional, is_uuid, slugify, utcnow


def test_slugify_handles_whitespace_and_unicode():
    assert slugify("  Café au Lait  ") == "cafe-au-lait"
    assert slugify("Open Mic @ Mercury!!") == "open-mic-mercury"
    assert slugify("") == ""


def test_is_uuid():
    assert is_uuid(str(uuid.uuid4()))
    assert not is_uuid("open-mic")
    assert not is_uuid(None)


def test_clean_optional_collapses_blanks():
    assert clean_optional("  hi ") == "hi"
    assert clean_optional("   ") is None
    assert clean_optional(None) is None


def test_utcnow_is_naive():
    assert utcnow().tzinfo is None
