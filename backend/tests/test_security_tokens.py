import re
from datetime import timedelta

from prodauth.core.security import (
    create_access_token,
    create_refresh_token,
    decode_access_token,
    decode_refresh_token,
    generate_jti,
    generate_token_family,
    hash_token_secret,
    verify_token_secret,
)


def test_access_token_rejects_refresh_typ():
    refresh = create_refresh_token({"sub": "1", "role": "member"}, jti=generate_jti(), family_id="family-1")
    assert decode_access_token(refresh) is None


def test_access_token_round_trip():
    token = create_access_token({"sub": "7", "email": "alice@studio.test", "role": "member"})
    payload = decode_access_token(token)
    assert payload is not None
    assert payload["sub"] == "7"
    assert payload["typ"] == "access"


def test_refresh_token_contains_family_and_jti():
    jti = generate_jti()
    token = create_refresh_token({"sub": "9"}, jti=jti, family_id="fam-xyz")
    payload = decode_refresh_token(token)
    assert payload is not None
    assert payload["typ"] == "refresh"
    assert payload["fam"] == "fam-xyz"
    assert payload["jti"] == jti


def test_refresh_decode_rejects_access_token():
    token = create_access_token({"sub": "9"})
    assert decode_refresh_token(token) is None


def test_expired_refresh_token_still_decodes_so_the_store_can_judge_it():
    token = create_refresh_token(
        {"sub": "9"}, jti=generate_jti(), family_id="fam", expires_delta=timedelta(seconds=-60)
    )
    payload = decode_refresh_token(token)
    assert payload is not None
    assert payload["fam"] == "fam"


def test_identifiers_are_random_hex_of_expected_length():
    jti = generate_jti()
    family = generate_token_family()
    assert re.fullmatch(r"[0-9a-f]{64}", jti)
    assert re.fullmatch(r"[0-9a-f]{32}", family)
    assert generate_jti() != jti


def test_token_secret_hash_accepts_long_secrets():
    secret = create_refresh_token({"sub": "1"}, jti=generate_jti(), family_id=generate_token_family())
    assert len(secret) > 72

    hashed = hash_token_secret(secret)
    assert hashed != secret
    assert verify_token_secret(secret, hashed)
    assert not verify_token_secret(secret + "x", hashed)


def test_token_secret_verify_handles_garbage_hash():
    assert verify_token_secret("anything", "not-a-bcrypt-hash") is False
