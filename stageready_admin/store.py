# backend/stageready_admin/store.py
"""
Hierarchical document store and blob store on top of Flask-SQLAlchemy.

Documents are addressed by slash-separated paths with an even number of
segments ("users/u1", "users/u1/speechHistory/s1"); a collection path has an
odd number ("users", "users/u1/speechHistory"). Deleting a document never
touches documents nested below it.

Every write commits on its own. Any SQLAlchemy fault is rolled back and
re-raised as StoreError.
"""
import copy
from datetime import date, datetime, timedelta, timezone
from functools import total_ordering
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from . import db
from .errors import DocumentNotFoundError, StoreError
from .models.blob import StoredBlob
from .models.document import StoredDocument

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_SECONDS_KEY = "_seconds"
_NANOS_KEY = "_nanoseconds"


# -----------------------------
# Store-native timestamp
# -----------------------------
@total_ordering
class Timestamp:
    __slots__ = ("seconds", "nanoseconds")

    def __init__(self, seconds: int, nanoseconds: int = 0):
        self.seconds = int(seconds)
        self.nanoseconds = int(nanoseconds)

    @classmethod
    def now(cls) -> "Timestamp":
        return cls.from_datetime(datetime.now(timezone.utc))

    @classmethod
    def from_datetime(cls, dt: datetime) -> "Timestamp":
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        delta = dt - EPOCH
        return cls(delta.days * 86400 + delta.seconds, delta.microseconds * 1000)

    def to_datetime(self) -> datetime:
        return EPOCH + timedelta(
            seconds=self.seconds, microseconds=self.nanoseconds // 1000
        )

    def to_millis(self) -> int:
        return self.seconds * 1000 + self.nanoseconds // 1_000_000

    def _key(self):
        return (self.seconds, self.nanoseconds)

    def __eq__(self, other):
        if not isinstance(other, Timestamp):
            return NotImplemented
        return self._key() == other._key()

    def __lt__(self, other):
        if not isinstance(other, Timestamp):
            return NotImplemented
        return self._key() < other._key()

    def __hash__(self):
        return hash(self._key())

    def __repr__(self):
        return f"Timestamp(seconds={self.seconds}, nanoseconds={self.nanoseconds})"


def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        value = Timestamp.from_datetime(value)
    elif isinstance(value, date):
        value = Timestamp.from_datetime(
            datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
        )
    if isinstance(value, Timestamp):
        return {_SECONDS_KEY: value.seconds, _NANOS_KEY: value.nanoseconds}
    if isinstance(value, dict):
        return {str(k): _encode(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode(v) for v in value]
    return value


def _decode(value: Any) -> Any:
    if isinstance(value, dict):
        if set(value.keys()) == {_SECONDS_KEY, _NANOS_KEY}:
            return Timestamp(value[_SECONDS_KEY], value[_NANOS_KEY])
        return {k: _decode(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_decode(v) for v in value]
    return value


def _split_document_path(path: str):
    parts = [p for p in path.strip("/").split("/") if p]
    if not parts or len(parts) % 2:
        raise ValueError(f"not a document path: {path!r}")
    return "/".join(parts[:-1]), parts[-1], "/".join(parts)


def _get_field(data: Dict[str, Any], field_path: str):
    """Returns (found, value) for a dotted field path."""
    current: Any = data
    for part in field_path.split("."):
        if not isinstance(current, dict) or part not in current:
            return False, None
        current = current[part]
    return True, current


def _set_field(data: Dict[str, Any], field_path: str, value: Any) -> None:
    parts = field_path.split(".")
    current = data
    for part in parts[:-1]:
        nxt = current.get(part)
        if not isinstance(nxt, dict):
            nxt = {}
            current[part] = nxt
        current = nxt
    current[parts[-1]] = value


def _order_key(value: Any):
    # null < bool < number < timestamp < string < anything else
    if value is None:
        return (0, 0)
    if isinstance(value, bool):
        return (1, value)
    if isinstance(value, (int, float)):
        return (2, value)
    if isinstance(value, Timestamp):
        return (3, value._key())
    if isinstance(value, str):
        return (4, value)
    return (5, str(value))


class DocumentSnapshot:
    def __init__(self, path: str, data: Optional[Dict[str, Any]]):
        self.path = path
        self.id = path.rsplit("/", 1)[-1]
        self._data = data

    @property
    def exists(self) -> bool:
        return self._data is not None

    def to_dict(self) -> Optional[Dict[str, Any]]:
        if self._data is None:
            return None
        return copy.deepcopy(self._data)

    def get(self, field_path: str, default=None):
        if self._data is None:
            return default
        found, value = _get_field(self._data, field_path)
        return value if found else default

    def __repr__(self):
        return f"DocumentSnapshot(path={self.path!r}, exists={self.exists})"


# -----------------------------
# Document store
# -----------------------------
class DocumentStore:
    def get(self, path: str) -> DocumentSnapshot:
        _, _, path = _split_document_path(path)
        try:
            row = db.session.get(StoredDocument, path, populate_existing=True)
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StoreError(f"failed to read {path}") from exc
        return DocumentSnapshot(path, _decode(row.data) if row else None)

    def list(
        self,
        collection: str,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[DocumentSnapshot]:
        collection = collection.strip("/")
        try:
            rows = (
                StoredDocument.query.filter_by(collection=collection)
                .populate_existing()
                .all()
            )
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StoreError(f"failed to list {collection}") from exc

        snapshots = [DocumentSnapshot(r.path, _decode(r.data)) for r in rows]
        if order_by is None:
            return sorted(snapshots, key=lambda s: s.id)

        with_field, without_field = [], []
        for snap in snapshots:
            found, value = _get_field(snap._data, order_by)
            if found:
                with_field.append((_order_key(value), snap))
            else:
                without_field.append(snap)

        with_field.sort(key=lambda pair: (pair[0], pair[1].id), reverse=descending)
        without_field.sort(key=lambda s: s.id)
        return [snap for _, snap in with_field] + without_field

    def set(self, path: str, data: Dict[str, Any]) -> None:
        collection, doc_id, path = _split_document_path(path)
        encoded = _encode(dict(data))
        try:
            row = db.session.get(StoredDocument, path, populate_existing=True)
            if row is None:
                row = StoredDocument(
                    path=path, collection=collection, doc_id=doc_id, data=encoded
                )
                db.session.add(row)
            else:
                row.data = encoded
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StoreError(f"failed to write {path}") from exc

    def update(self, path: str, data: Dict[str, Any]) -> None:
        """Merges ``data`` into an existing document.

        Top-level keys replace the stored value; dotted keys
        ("scores.overall") replace one nested field.
        """
        _, _, path = _split_document_path(path)
        try:
            row = db.session.get(StoredDocument, path, populate_existing=True)
            if row is None:
                raise DocumentNotFoundError(path)
            merged = copy.deepcopy(row.data or {})
            for field_path, value in data.items():
                _set_field(merged, field_path, _encode(value))
            row.data = merged
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StoreError(f"failed to update {path}") from exc

    def delete(self, path: str) -> None:
        _, _, path = _split_document_path(path)
        try:
            row = db.session.get(StoredDocument, path, populate_existing=True)
            if row is not None:
                db.session.delete(row)
                db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StoreError(f"failed to delete {path}") from exc


# -----------------------------
# Blob store
# -----------------------------
class BlobRef:
    def __init__(self, path: str, size: int = 0, content_type: Optional[str] = None):
        self.path = path
        self.name = path.rsplit("/", 1)[-1]
        self.size = size
        self.content_type = content_type

    def __eq__(self, other):
        return isinstance(other, BlobRef) and other.path == self.path

    def __hash__(self):
        return hash(self.path)

    def __repr__(self):
        return f"BlobRef({self.path!r})"


class BlobStore:
    def put(self, path: str, content: bytes, content_type: Optional[str] = None) -> BlobRef:
        path = path.strip("/")
        try:
            row = db.session.get(StoredBlob, path, populate_existing=True)
            if row is None:
                row = StoredBlob(path=path)
                db.session.add(row)
            row.content = content
            row.content_type = content_type
            row.size = len(content)
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StoreError(f"failed to upload {path}") from exc
        return BlobRef(path, len(content), content_type)

    def list_under_prefix(self, prefix: str) -> List[BlobRef]:
        """Every object below ``prefix/``, in path order. Unknown prefix -> []."""
        prefix = prefix.strip("/") + "/"
        try:
            rows = (
                StoredBlob.query.filter(StoredBlob.path.startswith(prefix, autoescape=True))
                .order_by(StoredBlob.path.asc())
                .populate_existing()
                .all()
            )
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StoreError(f"failed to list blobs under {prefix}") from exc
        return [BlobRef(r.path, r.size, r.content_type) for r in rows]

    def delete(self, ref: Union[BlobRef, str]) -> None:
        path = ref.path if isinstance(ref, BlobRef) else ref.strip("/")
        try:
            row = db.session.get(StoredBlob, path, populate_existing=True)
            if row is not None:
                db.session.delete(row)
                db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StoreError(f"failed to delete blob {path}") from exc
