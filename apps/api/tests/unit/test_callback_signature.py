import pytest
from scheduler_fixtures import issue_callback_signature, issue_jwt

from app.auth import jwt as jwt_module
from app.auth.jwt import JwtError, body_digest, verify_callback_signature

BODY = b'{"order_id":"o-1","bot_id":"b-1"}'


def test_signature_from_current_key_is_accepted():
    signature = issue_callback_signature(BODY, "current")

    claims = verify_callback_signature(signature, BODY, ("current", "next"))

    assert claims["iss"] == "Upstash"
    assert claims["body"] == body_digest(BODY)


def test_signature_from_next_key_is_accepted():
    signature = issue_callback_signature(BODY, "next")

    verify_callback_signature(signature, BODY, ("current", "next"))


def test_unknown_key_is_rejected():
    signature = issue_callback_signature(BODY, "stranger")

    with pytest.raises(JwtError, match="signature"):
        verify_callback_signature(signature, BODY, ("current", "next"))


def test_tampered_body_is_rejected():
    signature = issue_callback_signature(BODY, "current")

    with pytest.raises(JwtError, match="digest"):
        verify_callback_signature(signature, BODY + b" ", ("current", "next"))


def test_wrong_issuer_is_rejected():
    token = issue_jwt({"iss": "someone-else", "body": body_digest(BODY)}, "current")

    with pytest.raises(JwtError, match="issuer"):
        verify_callback_signature(token, BODY, ("current",))


def test_expired_signature_is_rejected():
    token = issue_jwt({"iss": "Upstash", "body": body_digest(BODY)}, "current", expires_in_s=-10)

    with pytest.raises(JwtError, match="Expired"):
        verify_callback_signature(token, BODY, ("current",))


def test_malformed_token_is_rejected():
    with pytest.raises(JwtError, match="Malformed"):
        verify_callback_signature("not-a-jwt", BODY, ("current",))


def test_no_keys_configured():
    with pytest.raises(JwtError, match="No signing key"):
        verify_callback_signature(issue_callback_signature(BODY, "x"), BODY, ("", ""))


def test_runtime_module_only_verifies():
    assert not hasattr(jwt_module, "issue_jwt")
    assert not hasattr(jwt_module, "issue_callback_signature")
