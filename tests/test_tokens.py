import jwt
import pytest

from errors import InvalidTokenError
from sessions.tokens import issue_token, decode_token

SECRET = "token-secret"


def test_issue_and_decode_carries_session_claims():
    token = issue_token("42", "7", "0xabc", SECRET)
    claims = decode_token(token, SECRET)
    assert claims["sessionId"] == "42"
    assert claims["networkId"] == "7"
    assert claims["guest"] == "0xabc"
    assert "exp" not in claims


def test_decode_rejects_wrong_secret():
    token = issue_token("42", "7", "0xabc", SECRET)
    with pytest.raises(InvalidTokenError):
        decode_token(token, "other-secret")


def test_decode_rejects_tampered_token():
    token = issue_token("42", "7", "0xabc", SECRET)
    header, payload, signature = token.split(".")
    with pytest.raises(InvalidTokenError):
        decode_token(".".join([header, payload, signature[::-1]]), SECRET)


@pytest.mark.parametrize("token", [None, "", "not-a-jwt", 12345])
def test_decode_rejects_garbage(token):
    with pytest.raises(InvalidTokenError):
        decode_token(token, SECRET)


def test_decode_rejects_missing_claims():
    token = jwt.encode({"sessionId": "42"}, SECRET, algorithm="HS256")
    with pytest.raises(InvalidTokenError) as exc:
        decode_token(token, SECRET)
    assert exc.value.code == "invalid_token"
    assert exc.value.status == 401
