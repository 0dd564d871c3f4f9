"""
Document store - dictionary-in, dictionary-out access to the register tables.

The import pipeline works with plain documents (``{field: value}``) and
identity filters. DocumentCollection maps those onto one ORM model; every
write is committed as its own transaction so a failing row never takes
earlier rows with it.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Type

from sqlalchemy import or_
from sqlalchemy.exc import DBAPIError, DisconnectionError, SQLAlchemyError
from sqlalchemy.orm import Session

from backend.models.schema import Appliance, DocumentMixin, Fuel, User, UserAppliance, UserFuel
from services.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

COLLECTION_MODELS: Dict[str, Type[DocumentMixin]] = {
    'Appliances': Appliance,
    'Fuels': Fuel,
    'Users': User,
    'UserAppliances': UserAppliance,
    'UserFuels': UserFuel,
}


def is_connection_error(exc: BaseException) -> bool:
    """True if ``exc`` means the database connection itself is gone."""
    if isinstance(exc, DisconnectionError):
        return True
    return isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)


class DocumentCollection:
    """One register table viewed as a collection of documents."""

    def __init__(self, session: Session, model: Type[DocumentMixin]):
        self.session = session
        self.model = model
        self.fields = set(model.document_fields())

    @property
    def name(self) -> str:
        return self.model.__tablename__

    def _check_fields(self, names: Iterable[str]):
        unknown = [n for n in names if n not in self.fields]
        if unknown:
            raise ValueError(f"Unknown field(s) for {self.name}: {', '.join(sorted(unknown))}")

    def _query(self, filter: Optional[Dict[str, Any]] = None):
        filter = filter or {}
        self._check_fields(filter)
        return self.session.query(self.model).filter_by(**filter)

    def _commit(self):
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            if is_connection_error(e):
                raise StoreUnavailableError(f"Lost connection to document store: {e}") from e
            raise

    def _read(self, operation):
        try:
            return operation()
        except SQLAlchemyError as e:
            self.session.rollback()
            if is_connection_error(e):
                raise StoreUnavailableError(f"Lost connection to document store: {e}") from e
            raise

    def find_one(self, filter: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Return the first document matching ``filter``, or None."""
        record = self._read(lambda: self._query(filter).first())
        return record.to_document() if record else None

    def find(
        self,
        filter: Optional[Dict[str, Any]] = None,
        offset: int = 0,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        query = self._query(filter).order_by(self.model.id).offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return [record.to_document() for record in self._read(query.all)]

    def find_in(self, field: str, values: Iterable[Any]) -> List[Dict[str, Any]]:
        """Documents whose ``field`` is any of ``values``."""
        self._check_fields([field])
        values = list(values)
        if not values:
            return []
        query = (self.session.query(self.model)
                 .filter(getattr(self.model, field).in_(values))
                 .order_by(self.model.id))
        return [record.to_document() for record in self._read(query.all)]

    def _search_query(self, query: str, fields: Iterable[str]):
        fields = list(fields)
        self._check_fields(fields)
        pattern = f"%{query}%"
        conditions = [getattr(self.model, f).ilike(pattern) for f in fields]
        return self.session.query(self.model).filter(or_(*conditions))

    def search(
        self,
        query: str,
        fields: Iterable[str],
        offset: int = 0,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Case-insensitive substring match of ``query`` against any of ``fields``."""
        q = self._search_query(query, fields).order_by(self.model.id).offset(offset)
        if limit is not None:
            q = q.limit(limit)
        return [record.to_document() for record in self._read(q.all)]

    def search_count(self, query: str, fields: Iterable[str]) -> int:
        return self._read(self._search_query(query, fields).count)

    def count(self, filter: Optional[Dict[str, Any]] = None) -> int:
        return self._read(self._query(filter).count)

    def insert(self, document: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a new document and return it as stored."""
        self._check_fields(document)
        record = self.model(**document)
        self.session.add(record)
        self._commit()
        return record.to_document()

    def update_fields(self, filter: Dict[str, Any], fields: Dict[str, Any]) -> int:
        """
        Set ``fields`` on every document matching ``filter``.

        ``created_at`` is never written by an update, even if supplied.

        Returns:
            Number of documents updated
        """
        values = {k: v for k, v in fields.items() if k != 'created_at'}
        self._check_fields(values)
        records = self._read(self._query(filter).all)
        for record in records:
            for key, value in values.items():
                setattr(record, key, value)
        self._commit()
        return len(records)

    def delete(self, filter: Dict[str, Any]) -> int:
        """Delete every document matching ``filter``; returns the number deleted."""
        records = self._read(self._query(filter).all)
        for record in records:
            self.session.delete(record)
        self._commit()
        return len(records)


class DocumentStore:
    """Entry point handing out collections bound to one session."""

    def __init__(self, session: Session):
        self.session = session

    def collection(self, name: str) -> DocumentCollection:
        """
        Resolve a collection by name (``Appliances``, ``Fuels``, ``Users``,
        ``UserAppliances``, ``UserFuels``).
        """
        try:
            model = COLLECTION_MODELS[name]
        except KeyError:
            raise KeyError(f"Unknown collection: {name}") from None
        return DocumentCollection(self.session, model)
