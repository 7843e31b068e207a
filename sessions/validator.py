import logging
from datetime import timedelta

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from errors import NotFoundError, SessionExpiredError, UpstreamError
from utils import utcnow, to_z
from .store import SessionStore
from .tokens import decode_token

logger = logging.getLogger(__name__)


def session_expiry(session):
    if session.start_time is None:
        return None
    return session.start_time + timedelta(hours=session.duration)


def session_view(session) -> dict:
    return {
        "sessionId": session.session_id,
        "networkId": session.network_id,
        "guest": session.guest,
        "duration": session.duration,
        "startTime": to_z(session.start_time),
        "expiresAt": to_z(session_expiry(session)),
        "active": session.active,
        "status": session.status,
        "ips": session.ip_list,
    }


class TokenValidator:
    """Sole owner of the pending -> active -> expired transitions."""

    def __init__(self, database, secret: str, store: SessionStore = None):
        self.database = database
        self.secret = secret
        self.store = store or SessionStore()

    def validate(self, token: str, ip: str, now=None) -> dict:
        now = now or utcnow()
        claims = decode_token(token, self.secret)
        session_id = str(claims["sessionId"])

        try:
            with self.database.session_scope() as db:
                session = self.store.get(db, session_id)
                if session is None:
                    raise NotFoundError("Session not found")
                if session.status == "expired":
                    raise SessionExpiredError()

                if session.start_time is None:
                    if self.store.start(db, session_id, now):
                        logger.info("Session %s started at %s", session_id, to_z(now))
                    db.refresh(session)

                if now >= session_expiry(session):
                    self.store.expire(db, session_id, now)
                    logger.info("Session %s expired", session_id)
                    expired = True
                else:
                    expired = False
        except SQLAlchemyError as exc:
            logger.exception("Database error while validating session %s", session_id)
            raise UpstreamError() from exc

        # raised outside the scope so the expire update is committed, not rolled back
        if expired:
            raise SessionExpiredError()

        if ip:
            self._record_ip(session_id, ip)

        with self.database.session_scope() as db:
            session = self.store.get(db, session_id)
            return session_view(session)

    def _record_ip(self, session_id: str, ip: str):
        try:
            with self.database.session_scope() as db:
                added = self.store.add_ip(db, session_id, ip)
        except IntegrityError:
            # a concurrent request inserted the same (session, ip) pair first
            logger.debug("IP %s already recorded for session %s", ip, session_id)
            return
        except SQLAlchemyError as exc:
            logger.exception("Database error while recording IP for session %s", session_id)
            raise UpstreamError() from exc

        if added:
            with self.database.session_scope() as db:
                count = self.store.ip_count(db, session_id)
            if count > 1:
                logger.warning("Multiple IPs detected for session %s (%d)", session_id, count)

    def get_token(self, session_id: str) -> str:
        with self.database.session_scope() as db:
            session = self.store.get(db, session_id)
            if session is None or session.status == "expired":
                raise NotFoundError("Session not found")
            return session.token

    def has_active_session(self, network_id: str, guest: str, now=None) -> bool:
        now = now or utcnow()
        with self.database.session_scope() as db:
            session = self.store.find_active(db, network_id, guest)
            return session is not None and now < session_expiry(session)
