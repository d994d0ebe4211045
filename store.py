"""
Pass Store: the only owner of the pass collection and the system state.

It loads both records from MongoDB once, hands out the current values, and
writes back whatever an operation produced before that operation returns.
No policy lives here.
"""
import logging
import threading
from contextlib import contextmanager
from typing import Dict, List, Optional

from pymongo.database import Database
from pymongo.errors import PyMongoError

from database import create_document, get_documents, upsert_document
from errors import StoreError
from schemas import OutingPass, SystemState

logger = logging.getLogger("gatepass.store")

SCHEMA_VERSION = 1
PASS_COLLECTION = "outingpass"
STATE_COLLECTION = "systemstate"
META_COLLECTION = "meta"
STATE_ID = "config"
SCHEMA_ID = "schema"


class PassStore:
    def __init__(self, database: Database, defaults: Optional[SystemState] = None):
        self.database = database
        self.defaults = defaults or SystemState()
        # Held for the whole read-decide-write cycle of every mutation
        self._lock = threading.RLock()
        self._passes: Optional[List[OutingPass]] = None
        self._state: Optional[SystemState] = None

    @contextmanager
    def transaction(self):
        with self._lock:
            self._ensure_loaded()
            yield self

    @property
    def passes(self) -> List[OutingPass]:
        with self._lock:
            self._ensure_loaded()
            return list(self._passes)

    @property
    def state(self) -> SystemState:
        with self._lock:
            self._ensure_loaded()
            return self._state

    def load(self) -> None:
        with self._lock:
            try:
                self._check_schema()
                docs = get_documents(PASS_COLLECTION, database=self.database)
                state_doc = self.database[STATE_COLLECTION].find_one({"_id": STATE_ID})
            except PyMongoError as e:
                raise StoreError(f"Failed to load gate pass data: {e}") from e

            passes = [OutingPass.model_validate(d) for d in docs]
            passes.sort(key=lambda p: (p.created_at, p.id), reverse=True)
            self._passes = passes
            self._state = SystemState.model_validate(state_doc) if state_doc else self.defaults
            logger.info("Loaded %d passes (window %s, capacity %d)", len(passes),
                        "open" if self._state.is_window_open else "closed", self._state.capacity)

    def commit(self, passes: List[OutingPass], state: Optional[SystemState] = None) -> None:
        """Persist changed passes and the state, then make them the current values."""
        with self._lock:
            self._ensure_loaded()
            known: Dict[str, OutingPass] = {p.id: p for p in self._passes}
            changed = [p for p in passes if known.get(p.id) != p]
            try:
                for p in changed:
                    upsert_document(PASS_COLLECTION, p.id, p.model_dump(mode="json"), database=self.database)
                if state is not None and state != self._state:
                    upsert_document(STATE_COLLECTION, STATE_ID, state.model_dump(mode="json"),
                                    database=self.database)
            except PyMongoError as e:
                logger.error("Commit failed after %d pending writes: %s", len(changed), e)
                raise StoreError(f"Failed to save gate pass data: {e}") from e

            self._passes = list(passes)
            if state is not None:
                self._state = state
            if changed:
                logger.debug("Committed %d pass changes", len(changed))

    def _ensure_loaded(self) -> None:
        if self._passes is None:
            self.load()

    def _check_schema(self) -> None:
        meta = self.database[META_COLLECTION].find_one({"_id": SCHEMA_ID})
        if meta is None:
            create_document(META_COLLECTION, {"_id": SCHEMA_ID, "version": SCHEMA_VERSION}, database=self.database)
            return
        version = meta.get("version", 0)
        if version > SCHEMA_VERSION:
            raise StoreError(f"Stored data uses schema version {version}; this build supports {SCHEMA_VERSION}")
