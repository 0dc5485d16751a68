import logging
from typing import Optional

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine

log = logging.getLogger(__name__)

# (classid, objid) for pg_try_advisory_lock; shared by every pipeline process
RUN_LOCK_KEY = (42, 1)


class RunLock:
    """
    Process-wide mutual exclusion backed by a Postgres session advisory lock.

        with RunLock(engine) as acquired:
            if not acquired:
                return

    Never blocks: a second run sees `acquired == False` and should exit.
    """

    def __init__(self, engine: Engine, key: tuple = RUN_LOCK_KEY):
        self.engine = engine
        self.key = key
        self.acquired = False
        self._conn: Optional[Connection] = None

    def _params(self) -> dict:
        return {"classid": self.key[0], "objid": self.key[1]}

    def __enter__(self) -> bool:
        self._conn = self.engine.connect()
        try:
            self.acquired = bool(
                self._conn.execute(
                    text("SELECT pg_try_advisory_lock(:classid, :objid)"), self._params()
                ).scalar()
            )
            self._conn.commit()
        except Exception:
            self._close()
            raise

        if self.acquired:
            log.info(f"🔒 Acquired run lock {self.key}")
        else:
            log.info("🔒 Another pipeline run holds the lock; skipping.")
            self._close()
        return self.acquired

    def __exit__(self, exc_type, exc, tb) -> bool:
        if self._conn is not None and self.acquired:
            try:
                self._conn.execute(text("SELECT pg_advisory_unlock(:classid, :objid)"), self._params())
                self._conn.commit()
                log.info(f"🔓 Released run lock {self.key}")
            finally:
                self._close()
        self.acquired = False
        return False

    def _close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
