from datetime import timedelta

from sqlalchemy import select, update

from database.models import Session, SessionIP, Metadata

CURSOR_KEY = "lastBlock"


class SessionStore:
    """Queries and status transitions over the sessions table.

    Every method takes the caller's SQLAlchemy session so a whole sync or a
    whole validation step commits or rolls back together.
    """

    def get(self, db, session_id: str):
        return db.query(Session).filter(Session.session_id == session_id).first()

    def exists(self, db, session_id: str) -> bool:
        return db.query(Session.id).filter(Session.session_id == session_id).first() is not None

    def create_pending(self, db, session_id, network_id, guest, token, duration_hours):
        session = Session(
            session_id=session_id,
            network_id=network_id,
            guest=guest,
            token=token,
            duration=duration_hours,
            start_time=None,
            active=False,
            status="pending",
        )
        db.add(session)
        return session

    def start(self, db, session_id: str, now) -> bool:
        """Start the clock; only the first caller wins. Returns True if this call set it."""
        result = db.execute(
            update(Session)
            .where(Session.session_id == session_id, Session.start_time.is_(None))
            .values(start_time=now, active=True, status="active", updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def expire(self, db, session_id: str, now):
        db.execute(
            update(Session)
            .where(Session.session_id == session_id, Session.status != "expired")
            .values(active=False, status="expired", updated_at=now)
            .execution_options(synchronize_session=False)
        )

    def add_ip(self, db, session_id: str, ip: str) -> bool:
        """Add ``ip`` to the session's observed set. Returns False if already present."""
        existing = db.query(SessionIP.id).filter(
            SessionIP.session_id == session_id, SessionIP.ip == ip
        ).first()
        if existing:
            return False
        db.add(SessionIP(session_id=session_id, ip=ip))
        return True

    def ip_count(self, db, session_id: str) -> int:
        return db.query(SessionIP).filter(SessionIP.session_id == session_id).count()

    def find_active(self, db, network_id: str, guest: str):
        return db.query(Session).filter(
            Session.network_id == network_id,
            Session.guest == guest.lower(),
            Session.status == "active",
        ).order_by(Session.start_time.desc()).first()

    def reap_pending(self, db, older_than_hours: int, now) -> int:
        """Expire sessions that were never validated within the TTL."""
        cutoff = now - timedelta(hours=older_than_hours)
        result = db.execute(
            update(Session)
            .where(Session.status == "pending", Session.created_at < cutoff)
            .values(active=False, status="expired", updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def get_cursor(self, db):
        value = db.execute(select(Metadata.value).where(Metadata.key == CURSOR_KEY)).scalar()
        return value

    def set_cursor(self, db, block_number: int):
        row = db.query(Metadata).filter(Metadata.key == CURSOR_KEY).first()
        if row:
            row.value = block_number
        else:
            db.add(Metadata(key=CURSOR_KEY, value=block_number))
