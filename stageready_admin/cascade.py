# backend/stageready_admin/cascade.py
"""
User removal across every collection and blob prefix that depends on it.

Order is fixed, children before parent:

  1. users/<uid>/speechHistory/*
  2. users/<uid>/speeches/*
  3. userGamification/<uid>
  4. userBadges/<uid>
  5. blobs under users/<uid>/speeches and users/<uid>/speechHistory
  6. users/<uid>

Each step treats "already gone" as done, so the whole run can be repeated.
Steps 1-4 are authoritative: a fault aborts the run and leaves the user
document in place. Step 5 is best effort: a fault is logged and the run
continues. Step 6 is the commit point.
"""
from typing import Dict, List

from flask import current_app

from .errors import CascadeDeleteError, StoreError
from .repository import (
    LEGACY_SPEECHES,
    SPEECH_HISTORY,
    AdminRepository,
    speech_blob_prefix,
)

DOCUMENT_COLLECTIONS = (SPEECH_HISTORY, LEGACY_SPEECHES)
BLOB_COLLECTIONS = (LEGACY_SPEECHES, SPEECH_HISTORY)


class CascadeResult:
    def __init__(self, uid: str):
        self.uid = uid
        self.deleted_documents: Dict[str, int] = {name: 0 for name in DOCUMENT_COLLECTIONS}
        self.gamification_deleted = False
        self.badges_deleted = False
        self.blobs_deleted = 0
        self.orphaned_prefixes: List[str] = []
        self.user_deleted = False

    def to_dict(self):
        return {
            "uid": self.uid,
            "deleted_documents": dict(self.deleted_documents),
            "gamification_deleted": self.gamification_deleted,
            "badges_deleted": self.badges_deleted,
            "blobs_deleted": self.blobs_deleted,
            "orphaned_prefixes": list(self.orphaned_prefixes),
            "user_deleted": self.user_deleted,
        }


class CascadeDeleter:
    def __init__(self, repository: AdminRepository):
        self.repository = repository

    def delete_user(self, uid: str) -> CascadeResult:
        result = CascadeResult(uid)
        logger = current_app.logger
        logger.info(f"[cascade] deleting user {uid}")

        for collection in DOCUMENT_COLLECTIONS:
            result.deleted_documents[collection] = self._drain_collection(uid, collection)

        try:
            result.gamification_deleted = self.repository.delete_user_gamification(uid)
        except StoreError as e:
            logger.error(f"[cascade] user {uid}: gamification delete failed: {e}")
            raise CascadeDeleteError(uid, "gamification") from e

        try:
            result.badges_deleted = self.repository.delete_user_badges(uid)
        except StoreError as e:
            logger.error(f"[cascade] user {uid}: badges delete failed: {e}")
            raise CascadeDeleteError(uid, "badges") from e

        for collection in BLOB_COLLECTIONS:
            prefix = speech_blob_prefix(uid, collection)
            try:
                result.blobs_deleted += self._delete_blobs(prefix)
            except StoreError as e:
                # leaves orphaned files; never blocks removing the user
                logger.warning(f"[cascade] user {uid}: blob cleanup under {prefix} failed: {e}")
                result.orphaned_prefixes.append(prefix)

        try:
            self.repository.delete_user_document(uid)
        except StoreError as e:
            logger.error(f"[cascade] user {uid}: user document delete failed: {e}")
            raise CascadeDeleteError(uid, "user") from e
        result.user_deleted = True

        logger.info(
            f"[cascade] user {uid} deleted: documents={result.deleted_documents} "
            f"blobs={result.blobs_deleted} orphaned_prefixes={result.orphaned_prefixes}"
        )
        return result

    def _drain_collection(self, uid: str, collection: str) -> int:
        try:
            speech_ids = self.repository.list_speech_ids(uid, collection)
            for speech_id in speech_ids:
                self.repository.delete_speech_document(uid, collection, speech_id)
        except StoreError as e:
            current_app.logger.error(f"[cascade] user {uid}: draining {collection} failed: {e}")
            raise CascadeDeleteError(uid, collection) from e
        return len(speech_ids)

    def _delete_blobs(self, prefix: str) -> int:
        refs = self.repository.list_blobs_under_prefix(prefix)
        for ref in refs:
            self.repository.delete_blob(ref)
        return len(refs)
