"""Repository abstraction with relational and key-value backends.

Both backends expose the same list/get/create/update/delete surface and return
pydantic read schemas, so route handlers and aggregations never know which
store is active. ``STORE_BACKEND`` selects the implementation at startup.
"""

from __future__ import annotations

import json
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Protocol

from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import ConflictError, InternalError, NotFoundError, ValidationError
from .logging_utils import get_logger
from .resources import RESOURCES, ResourceSpec
from .utils import (
    COST_CATEGORIES,
    PAYMENT_METHODS,
    TRUCK_STATUSES,
    new_id,
    normalize_choice,
    parse_calendar_date,
    utc_now,
)

LOGGER = get_logger(__name__)

CHOICE_FILTERS = {
    "category": COST_CATEGORIES,
    "method": PAYMENT_METHODS,
    "status": TRUCK_STATUSES,
}


class Repository(Protocol):
    spec: ResourceSpec

    def list(self, **filters: Any) -> List[BaseModel]: ...

    def get(self, item_id: str) -> BaseModel: ...

    def create(self, payload: BaseModel) -> BaseModel: ...

    def update(self, item_id: str, payload: BaseModel) -> BaseModel: ...

    def delete(self, item_id: str) -> None: ...


def _active_filters(spec: ResourceSpec, filters: Mapping[str, Any]) -> Dict[str, Any]:
    """Keep the filters *spec* supports, dropping blanks and coercing dates and choices."""
    active: Dict[str, Any] = {}
    for field in spec.filters:
        value = filters.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        if field == "date":
            try:
                value = parse_calendar_date(value)
            except ValueError as exc:
                raise ValidationError(f"Invalid date filter '{value}'") from exc
        elif field in CHOICE_FILTERS:
            value = normalize_choice(value, CHOICE_FILTERS[field])
        active[field] = value
    return active


def _not_found(spec: ResourceSpec) -> NotFoundError:
    return NotFoundError(f"{spec.label} not found")


class SqlRepository:
    """Repository backed by a SQLAlchemy session; one commit per write."""

    def __init__(self, session: Session, spec: ResourceSpec) -> None:
        self.session = session
        self.spec = spec

    @contextmanager
    def _guard(self, action: str) -> Iterator[None]:
        try:
            yield
        except IntegrityError as exc:
            self.session.rollback()
            field = self.spec.unique_fields[0] if self.spec.unique_fields else "record"
            raise ConflictError(self.spec.conflict_message(field)) from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            LOGGER.exception("Store failure while trying to %s %s", action, self.spec.name)
            raise InternalError(f"Failed to {action} {self.spec.name}") from exc

    def _read(self, row: Any) -> BaseModel:
        return self.spec.read_schema.model_validate(row)

    def _row(self, item_id: str) -> Any:
        row = self.session.get(self.spec.model, item_id)
        if row is None:
            raise _not_found(self.spec)
        return row

    def _ensure_unique(self, values: Mapping[str, Any], exclude_id: Optional[str] = None) -> None:
        model = self.spec.model
        for field in self.spec.unique_fields:
            query = self.session.query(model.id).filter(getattr(model, field) == values.get(field))
            if exclude_id is not None:
                query = query.filter(model.id != exclude_id)
            if query.first() is not None:
                raise ConflictError(self.spec.conflict_message(field))

    def list(self, **filters: Any) -> List[BaseModel]:
        model = self.spec.model
        with self._guard("fetch"):
            query = self.session.query(model)
            for field, value in _active_filters(self.spec, filters).items():
                query = query.filter(getattr(model, field) == value)
            query = query.order_by(*(getattr(model, field).desc() for field in self.spec.ordering))
            return [self._read(row) for row in query.all()]

    def get(self, item_id: str) -> BaseModel:
        with self._guard("fetch"):
            return self._read(self._row(item_id))

    def create(self, payload: BaseModel) -> BaseModel:
        values = payload.model_dump()
        with self._guard("create"):
            self._ensure_unique(values)
            row = self.spec.model(**values)
            self.session.add(row)
            self.session.commit()
            self.session.refresh(row)
        LOGGER.info("Created %s %s", self.spec.label.lower(), row.id)
        return self._read(row)

    def update(self, item_id: str, payload: BaseModel) -> BaseModel:
        values = payload.model_dump()
        with self._guard("update"):
            row = self._row(item_id)
            self._ensure_unique(values, exclude_id=item_id)
            for field, value in values.items():
                setattr(row, field, value)
            self.session.commit()
            self.session.refresh(row)
        LOGGER.info("Updated %s %s", self.spec.label.lower(), item_id)
        return self._read(row)

    def delete(self, item_id: str) -> None:
        with self._guard("delete"):
            row = self._row(item_id)
            self.session.delete(row)
            self.session.commit()
        LOGGER.info("Deleted %s %s", self.spec.label.lower(), item_id)


class JsonDocument:
    """A single JSON file holding one array of records per storage key."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.RLock()

    def _load(self) -> Dict[str, List[dict]]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            LOGGER.exception("Unable to read key-value store at %s", self.path)
            raise InternalError("Failed to read the data store") from exc
        if not isinstance(data, dict):
            raise InternalError("Data store is not a JSON object")
        return data

    def _dump(self, data: Dict[str, List[dict]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        scratch = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            with scratch.open("w", encoding="utf-8") as handle:
                json.dump(data, handle, indent=2, ensure_ascii=False)
            os.replace(scratch, self.path)
        except OSError as exc:
            LOGGER.exception("Unable to write key-value store at %s", self.path)
            raise InternalError("Failed to write the data store") from exc

    def read(self, key: str) -> List[dict]:
        with self._lock:
            return list(self._load().get(key, []))

    @contextmanager
    def edit(self, key: str) -> Iterator[List[dict]]:
        """Yield the mutable array for *key*; it is written back on clean exit."""
        with self._lock:
            data = self._load()
            items = data.setdefault(key, [])
            yield items
            self._dump(data)


# Writers from every request share the same lock per document path.
_DOCUMENTS: Dict[Path, JsonDocument] = {}
_DOCUMENTS_LOCK = threading.Lock()


def json_document(path: Path) -> JsonDocument:
    resolved = Path(path).resolve()
    with _DOCUMENTS_LOCK:
        if resolved not in _DOCUMENTS:
            _DOCUMENTS[resolved] = JsonDocument(resolved)
        return _DOCUMENTS[resolved]


class JsonRepository:
    """Repository backed by one array inside a :class:`JsonDocument`."""

    def __init__(self, document: JsonDocument, spec: ResourceSpec) -> None:
        self.document = document
        self.spec = spec

    def _records(self) -> List[BaseModel]:
        return [self.spec.read_schema.model_validate(item) for item in self.document.read(self.spec.storage_key)]

    @staticmethod
    def _index(items: List[dict], item_id: str) -> Optional[int]:
        for index, item in enumerate(items):
            if item.get("id") == item_id:
                return index
        return None

    def _ensure_unique(self, items: List[dict], record: BaseModel, exclude_id: Optional[str] = None) -> None:
        for field in self.spec.unique_fields:
            value = getattr(record, field)
            for item in items:
                if item.get("id") != exclude_id and item.get(field) == value:
                    raise ConflictError(self.spec.conflict_message(field))

    def list(self, **filters: Any) -> List[BaseModel]:
        active = _active_filters(self.spec, filters)
        records = [
            record
            for record in self._records()
            if all(getattr(record, field) == value for field, value in active.items())
        ]
        records.sort(
            key=lambda record: tuple(getattr(record, field) for field in self.spec.ordering),
            reverse=True,
        )
        return records

    def get(self, item_id: str) -> BaseModel:
        for record in self._records():
            if record.id == item_id:
                return record
        raise _not_found(self.spec)

    def create(self, payload: BaseModel) -> BaseModel:
        record = self.spec.read_schema.model_validate(
            {**payload.model_dump(), "id": new_id(self.spec.id_prefix), "created_at": utc_now()}
        )
        with self.document.edit(self.spec.storage_key) as items:
            self._ensure_unique(items, record)
            items.append(record.model_dump(mode="json"))
        LOGGER.info("Created %s %s", self.spec.label.lower(), record.id)
        return record

    def update(self, item_id: str, payload: BaseModel) -> BaseModel:
        with self.document.edit(self.spec.storage_key) as items:
            index = self._index(items, item_id)
            if index is None:
                raise _not_found(self.spec)
            current = items[index]
            record = self.spec.read_schema.model_validate(
                {**payload.model_dump(), "id": item_id, "created_at": current.get("created_at")}
            )
            self._ensure_unique(items, record, exclude_id=item_id)
            items[index] = record.model_dump(mode="json")
        LOGGER.info("Updated %s %s", self.spec.label.lower(), item_id)
        return record

    def delete(self, item_id: str) -> None:
        with self.document.edit(self.spec.storage_key) as items:
            index = self._index(items, item_id)
            if index is None:
                raise _not_found(self.spec)
            del items[index]
        LOGGER.info("Deleted %s %s", self.spec.label.lower(), item_id)


class Store:
    """Bundle of one repository per resource."""

    def __init__(self, repositories: Mapping[str, Repository]) -> None:
        self._repositories = dict(repositories)
        self.clients = self._repositories["clients"]
        self.trucks = self._repositories["trucks"]
        self.drivers = self._repositories["drivers"]
        self.trips = self._repositories["trips"]
        self.costs = self._repositories["costs"]
        self.payments = self._repositories["payments"]

    def resource(self, name: str) -> Repository:
        try:
            return self._repositories[name]
        except KeyError as exc:
            raise NotFoundError(f"Unknown resource '{name}'") from exc


def sql_store(session: Session) -> Store:
    return Store({name: SqlRepository(session, spec) for name, spec in RESOURCES.items()})


def json_store(path: Path) -> Store:
    document = json_document(path)
    return Store({name: JsonRepository(document, spec) for name, spec in RESOURCES.items()})


__all__ = [
    "JsonDocument",
    "JsonRepository",
    "Repository",
    "SqlRepository",
    "Store",
    "json_document",
    "json_store",
    "sql_store",
]
