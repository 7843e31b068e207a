import logging

from sqlalchemy.exc import SQLAlchemyError

from database.models import UserInfo
from errors import ConflictError, UpstreamError
from networks.schemas import UserInfoIn, parse_body

logger = logging.getLogger(__name__)


class UserRegistry:
    """Profile records keyed by lower-cased wallet address."""

    def __init__(self, database):
        self.database = database

    def save(self, body) -> dict:
        user = parse_body(UserInfoIn, body)
        try:
            with self.database.session_scope() as db:
                existing = db.query(UserInfo).filter(UserInfo.wallet_address == user.walletAddress).first()
                if existing:
                    raise ConflictError("User already exists")
                db.add(UserInfo(name=user.name, wallet_address=user.walletAddress, email=user.email))
        except SQLAlchemyError as exc:
            logger.exception("Error saving user info")
            raise UpstreamError("Failed to save user info") from exc
        return {"message": "User info saved successfully", "walletAddress": user.walletAddress}
