import copy
import logging

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .db import get_session, init_db
from .errors import StoreError
from .models import StoredDocument, utcnow

log = logging.getLogger("powerhub.store")

NODES = "nodes"
RELAY_COMMANDS = "relay_commands"
SCHEDULES = "schedules"
TIMERS = "timers"


def empty_document() -> dict:
    return {"nodes": {}}


class DocumentStore:
    """Whole-document load/replace per domain.

    The store only makes documents durable. Each component keeps the single
    in-memory copy of its domain and calls save() after every mutation.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def initialize(self) -> None:
        try:
            init_db(self.engine)
        except SQLAlchemyError as e:
            raise StoreError(f"failed to initialize database: {e}") from e

    def load(self, domain: str) -> dict:
        try:
            with get_session(self.engine) as session:
                row = session.get(StoredDocument, domain)
                body = copy.deepcopy(row.body) if row and row.body else None
        except SQLAlchemyError as e:
            raise StoreError(f"failed to read {domain}: {e}", domain=domain) from e

        if not isinstance(body, dict):
            return empty_document()
        body.setdefault("nodes", {})
        return body

    def save(self, domain: str, document: dict) -> None:
        body = copy.deepcopy(document)
        try:
            with get_session(self.engine) as session:
                row = session.get(StoredDocument, domain)
                if row is None:
                    row = StoredDocument(domain=domain, body=body)
                else:
                    row.body = body
                    row.updated_at = utcnow()
                session.add(row)
                session.commit()
        except SQLAlchemyError as e:
            log.error("Error writing %s: %s", domain, e)
            raise StoreError(f"failed to write {domain}: {e}", domain=domain) from e
