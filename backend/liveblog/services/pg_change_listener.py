"""
LISTEN consumer for the `updates` change feed (db/change_feed.py).

One dedicated psycopg2 connection per process, outside the SQLAlchemy pool, in autocommit mode.
A daemon thread waits on the socket, drains conn.notifies and hands each payload to the
ChangeHub. Lost connections are retried after reconnect_seconds; changes committed while
disconnected are not replayed (viewers refetch the feed on reconnect).
"""
import logging
import select
import threading

import psycopg2
import psycopg2.extensions
from sqlalchemy.engine import make_url

from liveblog.db.change_feed import CHANGE_CHANNEL
from liveblog.services.change_stream import ChangeHub, change_from_notification

logger = logging.getLogger(__name__)


def psycopg2_dsn(database_url: str) -> str:
    """SQLAlchemy URL (postgresql+psycopg2://...) -> libpq URL psycopg2.connect accepts."""
    return make_url(database_url).set(drivername="postgresql").render_as_string(hide_password=False)


class PgChangeListener:
    def __init__(
        self,
        dsn: str,
        hub: ChangeHub,
        *,
        channel: str = CHANGE_CHANNEL,
        poll_seconds: float = 5.0,
        reconnect_seconds: float = 2.0,
    ):
        self._dsn = dsn
        self._hub = hub
        self._channel = channel
        self._poll_seconds = poll_seconds
        self._reconnect_seconds = reconnect_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        # Set while a LISTEN connection is open
        self.listening = threading.Event()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="pg-change-listener", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def dispatch(self, payload: str) -> int:
        """Forward one notification payload to the hub. Returns deliveries."""
        parsed = change_from_notification(payload)
        if parsed is None:
            logger.warning("Ignoring malformed change notification: %.200s", payload)
            return 0
        liveblog_id, change = parsed
        return self._hub.publish(liveblog_id, change)

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self._listen()
            except psycopg2.Error as e:
                logger.warning("Change listener connection lost: %s; reconnecting", e)
            finally:
                self.listening.clear()
            self._stop.wait(self._reconnect_seconds)

    def _listen(self) -> None:
        conn = psycopg2.connect(self._dsn)
        try:
            conn.set_isolation_level(psycopg2.extensions.ISOLATION_LEVEL_AUTOCOMMIT)
            with conn.cursor() as cur:
                cur.execute(f"LISTEN {self._channel};")
            self.listening.set()
            logger.info("Listening for update changes on channel %s", self._channel)
            while not self._stop.is_set():
                readable, _, _ = select.select([conn], [], [], self._poll_seconds)
                if not readable:
                    continue
                conn.poll()
                while conn.notifies:
                    self.dispatch(conn.notifies.pop(0).payload)
        finally:
            conn.close()
