# backend/stageready_admin/models/blob.py
from datetime import datetime, timezone
from .. import db


class StoredBlob(db.Model):
    __tablename__ = "blobs"

    path = db.Column(db.String(768), primary_key=True)
    content = db.Column(db.LargeBinary, nullable=False)
    content_type = db.Column(db.String(100))
    size = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(
        db.DateTime, default=lambda: datetime.now(timezone.utc), nullable=False
    )
