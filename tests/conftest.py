from datetime import datetime, timedelta, timezone

import pytest
from flask_jwt_extended import create_access_token

from config import TestConfig
from stageready_admin import create_app, db
from stageready_admin.repository import AdminRepository
from stageready_admin.store import BlobStore, DocumentStore, Timestamp


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def documents(app):
    return DocumentStore()


@pytest.fixture
def blobs(app):
    return BlobStore()


@pytest.fixture
def repo(documents, blobs):
    return AdminRepository(documents, blobs)


@pytest.fixture
def now():
    return datetime.now(timezone.utc)


@pytest.fixture
def add_user(documents):
    def _add_user(uid, email=None, first_name="", last_name="", role=None, **extra):
        data = {
            "email": email if email is not None else f"{uid}@example.com",
            "firstName": first_name,
            "lastName": last_name,
            "createdAt": Timestamp.now(),
            "updatedAt": Timestamp.now(),
            **extra,
        }
        if role is not None:
            data["role"] = role
        documents.set(f"users/{uid}", data)
        return data

    return _add_user


@pytest.fixture
def add_speech(documents):
    def _add_speech(uid, speech_id, overall=0.0, duration=0, created_at=None,
                    collection="speechHistory", **extra):
        created_at = created_at or datetime.now(timezone.utc)
        scores = {
            "speech_pace": extra.pop("speech_pace", overall),
            "pausing_fluency": extra.pop("pausing_fluency", overall),
            "loudness_control": 1.0,
            "pitch_variation": extra.pop("pitch_variation", overall),
            "articulation_clarity": extra.pop("articulation_clarity", overall),
            "expressive_emphasis": 1.0,
            "filler_words": 0.5,
            "overall": overall,
        }
        data = {
            "transcript": extra.pop("transcript", f"speech {speech_id}"),
            "speechType": extra.pop("speechType", "general"),
            "scores": scores,
            "duration": duration,
            "wordCount": extra.pop("wordCount", 100),
            "averagePace": extra.pop("averagePace", 120),
            "createdAt": created_at,
            **extra,
        }
        documents.set(f"users/{uid}/{collection}/{speech_id}", data)
        return data

    return _add_speech


@pytest.fixture
def corpus(add_user, add_speech, now):
    """Alice: three speeches (overall 0, 2.0, 4.0). Bob: admin, no speeches."""
    add_user("alice", email="alice@example.com", first_name="Alice", last_name="Smith")
    add_user("bob", email="bob@example.com", first_name="Bob", last_name="Jones", role="admin")
    add_speech("alice", "s1", overall=0.0, duration=60, created_at=now - timedelta(days=3))
    add_speech("alice", "s2", overall=2.0, duration=120, created_at=now - timedelta(days=2))
    add_speech("alice", "s3", overall=4.0, duration=180, created_at=now - timedelta(days=1))


@pytest.fixture
def admin_headers(add_user):
    add_user("admin-1", email="root@example.com", first_name="Root", last_name="Admin", role="admin")
    token = create_access_token(identity="admin-1")
    return {"Authorization": f"Bearer {token}"}
