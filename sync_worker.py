import logging
import threading

from sqlalchemy.exc import SQLAlchemyError

from errors import UpstreamError
from ledger.client import LEDGER_ERRORS
from sessions.store import SessionStore
from sessions.tokens import issue_token
from utils import utcnow

logger = logging.getLogger(__name__)

STOP_TIMEOUT_SECONDS = 10


class EventSyncWorker:
    """Turns SessionStarted ledger events into pending sessions.

    One call to :meth:`sync` is one transaction: inserts and the cursor move
    commit together or not at all, so a failed run is simply retried.
    """

    def __init__(self, database, ledger, secret, lookback_blocks=1000, pending_ttl_hours=None, store=None):
        self.database = database
        self.ledger = ledger
        self.secret = secret
        self.lookback_blocks = lookback_blocks
        self.pending_ttl_hours = pending_ttl_hours
        self.store = store or SessionStore()

        self._thread = None
        self._stop_event = threading.Event()

    def sync(self, now=None) -> dict:
        now = now or utcnow()
        try:
            with self.database.session_scope() as db:
                cursor = self.store.get_cursor(db)
                head = self.ledger.block_number()
                from_block = cursor + 1 if cursor is not None else max(head - self.lookback_blocks, 0)

                created = 0
                skipped = 0
                if from_block <= head:
                    events = self.ledger.session_started_events(from_block, head)
                    seen = set()
                    for event in events:
                        if event.session_id in seen or self.store.exists(db, event.session_id):
                            skipped += 1
                            continue
                        seen.add(event.session_id)
                        token = issue_token(event.session_id, event.network_id, event.guest, self.secret)
                        self.store.create_pending(
                            db,
                            session_id=event.session_id,
                            network_id=event.network_id,
                            guest=event.guest,
                            token=token,
                            duration_hours=event.duration_hours,
                        )
                        created += 1
                        logger.info("Created pending session %s for %s on network %s",
                                    event.session_id, event.guest, event.network_id)

                self.store.set_cursor(db, head)

                reaped = 0
                if self.pending_ttl_hours:
                    reaped = self.store.reap_pending(db, self.pending_ttl_hours, now)
                    if reaped:
                        logger.info("Expired %d abandoned pending session(s)", reaped)
        except SQLAlchemyError as exc:
            logger.exception("Database error during event sync")
            raise UpstreamError("Failed to sync events") from exc
        except LEDGER_ERRORS as exc:
            logger.exception("Ledger error during event sync")
            raise UpstreamError("Failed to sync events") from exc

        logger.info("Sync: blocks %s..%s, %d created, %d skipped", from_block, head, created, skipped)
        return {
            "status": "Events synced",
            "fromBlock": from_block,
            "toBlock": head,
            "created": created,
            "skipped": skipped,
            "reaped": reaped,
        }

    def _loop(self, interval_minutes: int, stop_event: threading.Event):
        while not stop_event.is_set():
            logger.info("Sync worker: starting event sync...")
            try:
                self.sync()
            except UpstreamError:
                logger.error("Sync worker: sync failed, cursor not advanced")
            logger.info("Sync worker: sleeping %s minute(s)...", interval_minutes)
            stop_event.wait(interval_minutes * 60)

    def start(self, interval_minutes: int = 1) -> bool:
        if self.is_running():
            logger.info("Sync worker already running.")
            return False
        if self._thread is not None and self._thread.is_alive():
            # a stopped loop may still be inside sync()
            self._thread.join(timeout=STOP_TIMEOUT_SECONDS)
        # one event per loop
        self._stop_event = threading.Event()
        self._thread = threading.Thread(target=self._loop, args=(interval_minutes, self._stop_event), daemon=True)
        self._thread.start()
        logger.info("Sync worker started.")
        return True

    def stop(self):
        self._stop_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=STOP_TIMEOUT_SECONDS)
        logger.info("Sync worker stopped.")

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop_event.is_set()
