from app.security import (
    DESCRIPTION_MAX_LENGTH,
    USERNAME_MAX_LENGTH,
    hash_password,
    is_password_hash,
    is_valid_field,
    verify_password,
)


def test_hash_password_is_sha512_hex():
    digest = hash_password("hunter22")
    assert len(digest) == 128
    assert is_password_hash(digest)
    assert digest == hash_password("hunter22")
    assert digest != hash_password("hunter23")


def test_verify_password():
    digest = hash_password("hunter22")
    assert verify_password("hunter22", digest)
    assert not verify_password("Hunter22", digest)
    assert not verify_password("hunter22", "")


def test_is_valid_field_bounds():
    assert is_valid_field("abc", USERNAME_MAX_LENGTH)
    assert not is_valid_field("ab", USERNAME_MAX_LENGTH)
    assert not is_valid_field("a" * 21, USERNAME_MAX_LENGTH)
    assert is_valid_field("a" * 60, DESCRIPTION_MAX_LENGTH)


def test_is_valid_field_charset():
    assert is_valid_field("Movie night #2?", DESCRIPTION_MAX_LENGTH)
    assert is_valid_field("a/b<c>d;e", DESCRIPTION_MAX_LENGTH)
    assert not is_valid_field("quote's", DESCRIPTION_MAX_LENGTH)
    assert not is_valid_field("café", DESCRIPTION_MAX_LENGTH)
    assert not is_valid_field(None, DESCRIPTION_MAX_LENGTH)


def test_is_valid_field_rejects_trailing_newline():
    assert not is_valid_field("alice\n", USERNAME_MAX_LENGTH)
    assert not is_valid_field("Movies\n", DESCRIPTION_MAX_LENGTH)
    assert not is_valid_field("line\nbreak", DESCRIPTION_MAX_LENGTH)


def test_is_password_hash_rejects_trailing_newline():
    assert not is_password_hash(hash_password("pw") + "\n")
