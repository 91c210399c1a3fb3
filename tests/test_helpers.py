"""Unit tests for text helpers and password/JWT utilities."""
import jwt
import pytest

from app.config import settings
from app.utils.helpers import (
    existing_annotated_text,
    find_block,
    merge_retried_annotation,
    replace_first,
    split_sentences,
)
from app.utils.security import (
    duration_to_seconds,
    hash_password,
    sign_token,
    verify_password,
    verify_token,
)


def test_split_sentences():
    text = "The cat sat.  Did it?   Yes!\nIt did"
    assert split_sentences(text) == ["The cat sat.", "Did it?", "Yes!", "It did"]
    assert split_sentences("") == []
    assert split_sentences("   ") == []


def test_replace_first_only_touches_first_occurrence():
    assert replace_first("a cat and a cat", "cat", "dog") == "a dog and a cat"
    assert replace_first("unchanged", "", "x") == "unchanged"


def test_existing_annotated_text():
    assert existing_annotated_text({"annotatedText": "x [a|b]"}) == "x [a|b]"
    assert existing_annotated_text({"annotatedText": ""}) is None
    assert existing_annotated_text(None) is None
    assert existing_annotated_text("text") is None


def test_merge_replaces_existing_annotation():
    merged = merge_retried_annotation(
        "The [cat|con mèo] sat.", "The cat sat.", "cat", "[cat|mèo con]"
    )
    assert merged == "The [cat|mèo con] sat."


def test_merge_falls_back_to_raw_text():
    assert (
        merge_retried_annotation("The [cat|mèo] sat.", "The cat sat.", "sat", "[sat|ngồi]")
        == "The [cat|mèo] [sat|ngồi]."
    )
    assert merge_retried_annotation(None, "The cat sat.", "cat", "[cat|mèo]") == "The [cat|mèo] sat."


def test_merge_treats_text_literally():
    merged = merge_retried_annotation("A [c++|ngôn ngữ] b", "A c++ b", "c++", "[c++|C plus plus]")
    assert merged == "A [c++|C plus plus] b"


def test_find_block():
    content = {"blocks": [{"id": "a"}, {"id": "b"}]}
    assert find_block(content, "b") == 1
    assert find_block(content, "z") == -1
    assert find_block({"blocks": "nope"}, "a") == -1
    assert find_block(None, "a") == -1


@pytest.mark.parametrize(
    "duration, seconds",
    [("30s", 30), ("15m", 900), ("2h", 7200), ("7d", 604800), ("", 0), ("10x", 0), ("m", 0), ("abm", 0)],
)
def test_duration_to_seconds(duration, seconds):
    assert duration_to_seconds(duration) == seconds


def test_password_hashing():
    hashed = hash_password("secret123")
    assert hashed != "secret123"
    assert verify_password("secret123", hashed)
    assert not verify_password("wrong", hashed)
    assert not verify_password("secret123", "not-a-bcrypt-hash")


def test_token_round_trip_and_rejection():
    token = sign_token({"sub": "user-1", "role": "user"}, "5m")
    claims = verify_token(token)
    assert claims["sub"] == "user-1"
    assert claims["exp"] - claims["iat"] == 300

    assert sign_token({"sub": "user-1"}, "5m") != token
    assert verify_token(None) is None
    assert verify_token(token + "x") is None

    forged = jwt.encode({"sub": "user-1"}, "other-secret", algorithm=settings.JWT_ALGORITHM)
    assert verify_token(forged) is None

    expired = sign_token({"sub": "user-1"}, "0s")
    claims = jwt.decode(expired, options={"verify_signature": False})
    assert claims["exp"] == claims["iat"]
