"""
Local document store on SQLAlchemy.

Documents are JSON bodies addressed by collection and key, scoped to the
signed-in user (or an anonymous owner when nobody is signed in).
"""
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from dashboard_data.db import Document, create_db_engine, init_db, make_session_factory

logger = logging.getLogger("document_store")

ANONYMOUS_OWNER = "anonymous"

DocumentListener = Callable[[str, Optional[Dict[str, Any]]], None]


class SqlDocumentStore:
    """
    Usage:
        store = SqlDocumentStore("sqlite:///./dashboard_data.db", user_id="u1")
        store.persist("news_feeds", url, {"url": url, ...})
        for doc in store.query("news_feeds"): ...
    """

    def __init__(self, database_url: str = "sqlite://", user_id: Optional[str] = None):
        self._engine = create_db_engine(database_url)
        init_db(self._engine)
        self._sessions = make_session_factory(self._engine)
        self._user_id = user_id
        self._listeners: Dict[str, List[DocumentListener]] = {}
        self._lock = threading.Lock()

    @property
    def owner(self) -> str:
        return self._user_id or ANONYMOUS_OWNER

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    # ===== AUTH =====

    def sign_in(self, user_id: str) -> None:
        if not user_id:
            raise ValueError("user_id must not be empty")
        self._user_id = user_id
        logger.info(f"Signed in as {user_id}")

    def sign_out(self) -> None:
        self._user_id = None
        logger.info("Signed out")

    def is_authenticated(self) -> bool:
        return self._user_id is not None

    def is_available(self) -> bool:
        """Connectivity probe; never raises."""
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.warning(f"Document store unavailable: {e}")
            return False

    # ===== DOCUMENTS =====

    def _find(self, session, collection: str, key: str) -> Optional[Document]:
        return (
            session.query(Document)
            .filter(
                Document.owner == self.owner,
                Document.collection == collection,
                Document.key == key,
            )
            .first()
        )

    def persist(self, collection: str, key: str, document: Dict[str, Any]) -> None:
        """Create or replace a document."""
        with self._sessions() as session:
            row = self._find(session, collection, key)
            if row is None:
                session.add(Document(owner=self.owner, collection=collection, key=key, body=dict(document)))
            else:
                row.body = dict(document)
            session.commit()
        self._notify(collection, key, dict(document))

    def get(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        with self._sessions() as session:
            row = self._find(session, collection, key)
            return dict(row.body) if row is not None else None

    def delete(self, collection: str, key: str) -> bool:
        with self._sessions() as session:
            row = self._find(session, collection, key)
            if row is None:
                return False
            session.delete(row)
            session.commit()
        self._notify(collection, key, None)
        return True

    def query(self, collection: str) -> List[Dict[str, Any]]:
        """All documents of a collection, oldest write first."""
        with self._sessions() as session:
            rows = (
                session.query(Document)
                .filter(Document.owner == self.owner, Document.collection == collection)
                .order_by(Document.id)
                .all()
            )
            return [dict(row.body) for row in rows]

    # ===== SUBSCRIPTIONS =====

    def subscribe(self, collection: str, listener: DocumentListener) -> Callable[[], None]:
        """
        Receive (key, document) after every write to a collection;
        document is None for a delete.

        Returns:
            A callable that removes the listener
        """
        with self._lock:
            self._listeners.setdefault(collection, []).append(listener)

        def unsubscribe() -> None:
            with self._lock:
                listeners = self._listeners.get(collection, [])
                if listener in listeners:
                    listeners.remove(listener)

        return unsubscribe

    def _notify(self, collection: str, key: str, document: Optional[Dict[str, Any]]) -> None:
        with self._lock:
            listeners = list(self._listeners.get(collection, []))
        for listener in listeners:
            try:
                listener(key, document)
            except Exception as e:
                logger.exception(f"Document listener for '{collection}' failed: {e}")

    def dispose(self) -> None:
        with self._lock:
            self._listeners.clear()
        self._engine.dispose()
