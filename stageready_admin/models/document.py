# backend/stageready_admin/models/document.py
from datetime import datetime, timezone
from .. import db


def _utcnow():
    return datetime.now(timezone.utc)


class StoredDocument(db.Model):
    """One document of the hierarchical store, addressed by its full path.

    ``collection`` is the parent collection path ("users" or
    "users/<uid>/speechHistory"), ``doc_id`` the last path segment.
    """

    __tablename__ = "documents"

    path = db.Column(db.String(512), primary_key=True)
    collection = db.Column(db.String(512), nullable=False, index=True)
    doc_id = db.Column(db.String(255), nullable=False)
    data = db.Column(db.JSON, nullable=False, default=dict)

    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)
    updated_at = db.Column(
        db.DateTime, default=_utcnow, onupdate=_utcnow, nullable=False
    )
