import jwt

from errors import InvalidTokenError

ALGORITHM = "HS256"
REQUIRED_CLAIMS = ("sessionId", "networkId", "guest")


def issue_token(session_id: str, network_id: str, guest: str, secret: str) -> str:
    """Sign a claim for one session. No ``exp``: expiry lives on the stored session."""
    payload = {"sessionId": session_id, "networkId": network_id, "guest": guest}
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def decode_token(token: str, secret: str) -> dict:
    if not token or not isinstance(token, str):
        raise InvalidTokenError()
    try:
        claims = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except jwt.PyJWTError as exc:
        raise InvalidTokenError() from exc
    if any(not claims.get(name) for name in REQUIRED_CLAIMS):
        raise InvalidTokenError()
    return claims
