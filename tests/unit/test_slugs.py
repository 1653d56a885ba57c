from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from pixedge.errors import InvalidCustomId, SlugTaken
from pixedge.services.slugs import (
    GENERATED_ID_LENGTH,
    RESERVED_SLUGS,
    SLUG_MAX_LENGTH,
    SlugAllocator,
    normalize_slug,
    suggest_alternatives,
    validate_slug,
)


@pytest.fixture
def media():
    store = MagicMock()
    store.media_exists.return_value = False
    return store


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("My Cool Pic!!", "my-cool-pic"),
        ("  Hello   World  ", "hello-world"),
        ("--a--b--", "a-b"),
        ("UPPER_case", "uppercase"),
        ("tab\tand\nnewline", "tab-and-newline"),
        ("émoji🙂ok", "mojiok"),
        ("", ""),
        (None, ""),
    ],
)
def test_normalize_slug(raw, expected):
    assert normalize_slug(raw) == expected


@pytest.mark.parametrize(
    "raw",
    ["My Cool Pic!!", " -x- ", "a  -  b", "___", "Ünïcödé slug", "a--b", "x" * 40],
)
def test_normalize_slug_is_idempotent(raw):
    once = normalize_slug(raw)
    assert normalize_slug(once) == once


def test_validate_length_boundaries():
    """1 and 33 characters fail; 2 and 32 pass"""
    with pytest.raises(InvalidCustomId):
        validate_slug("a")
    assert validate_slug("ab") == "ab"
    assert validate_slug("a" * 32) == "a" * 32
    with pytest.raises(InvalidCustomId):
        validate_slug("a" * 33)


def test_validate_empty_fails():
    with pytest.raises(InvalidCustomId) as excinfo:
        validate_slug("")
    assert excinfo.value.code == "INVALID_CUSTOM_ID"
    assert excinfo.value.status_code == 400


@pytest.mark.parametrize("word", sorted(RESERVED_SLUGS))
def test_reserved_words_rejected(word, media):
    allocator = SlugAllocator(media)
    if len(word) < 2:
        expected = "at least"
    else:
        expected = "reserved"
    with pytest.raises(InvalidCustomId) as excinfo:
        allocator.allocate(word)
    assert expected in excinfo.value.message
    media.media_exists.assert_not_called()


def test_admin_is_reserved(media):
    with pytest.raises(InvalidCustomId) as excinfo:
        SlugAllocator(media).allocate("admin")
    assert "reserved" in excinfo.value.message


def test_api_rejected_but_apis_allowed(media):
    allocator = SlugAllocator(media)
    with pytest.raises(InvalidCustomId):
        allocator.allocate("API")
    assert allocator.allocate("apis") == "apis"


def test_allocate_normalizes_custom_id(media):
    assert SlugAllocator(media).allocate("My Cool Pic!!") == "my-cool-pic"
    media.media_exists.assert_called_once_with("my-cool-pic")


def test_allocate_rejects_id_that_normalizes_to_nothing(media):
    with pytest.raises(InvalidCustomId):
        SlugAllocator(media).allocate("!!!")


@pytest.mark.parametrize("custom_id", [None, ""])
def test_allocate_generates_id_without_custom_id(custom_id, media):
    slug = SlugAllocator(media).allocate(custom_id)
    assert len(slug) == GENERATED_ID_LENGTH
    assert slug == normalize_slug(slug)
    media.media_exists.assert_not_called()


@pytest.mark.parametrize("custom_id", ["   ", "\t"])
def test_allocate_rejects_whitespace_custom_id(custom_id, media):
    with pytest.raises(InvalidCustomId):
        SlugAllocator(media).allocate(custom_id)
    media.media_exists.assert_not_called()


def test_allocate_taken_slug_raises_with_suggestions(media):
    media.media_exists.return_value = True
    with pytest.raises(SlugTaken) as excinfo:
        SlugAllocator(media).allocate("launch")
    exc = excinfo.value
    assert exc.code == "ID_ALREADY_EXISTS"
    assert exc.status_code == 409
    assert exc.message == "The ID 'launch' is already taken"
    assert len(exc.suggestions) == 3
    assert all(s.startswith("launch") for s in exc.suggestions)
    assert exc.to_payload()["error"]["suggestions"] == exc.suggestions


def test_accepted_slug_is_taken_once_a_record_exists():
    existing = set()
    store = MagicMock()
    store.media_exists.side_effect = lambda slug: slug in existing
    allocator = SlugAllocator(store)

    slug = allocator.allocate("summer-trip")
    existing.add(slug)

    with pytest.raises(SlugTaken):
        allocator.allocate("summer-trip")


def test_suggestions_are_valid_slugs():
    base = "b" * SLUG_MAX_LENGTH
    for suggestion in suggest_alternatives(base):
        assert validate_slug(normalize_slug(suggestion)) == suggestion
        assert len(suggestion) <= SLUG_MAX_LENGTH


def test_suggestion_shapes():
    first, second, third = suggest_alternatives("pic")
    assert first.startswith("pic-") and len(first) == len("pic-") + 4
    assert second.startswith("pic-") and len(second) == len("pic-") + 3
    assert third.startswith("pic") and third[3:].isdigit()
    assert 0 <= int(third[3:]) <= 999
