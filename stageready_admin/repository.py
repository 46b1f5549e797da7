# backend/stageready_admin/repository.py
"""
Per-record-kind CRUD over the document and blob stores.

This is the only module that talks to storage. Reads of missing documents
return None; writes either return normally or raise StoreError.
"""
from typing import Any, Dict, Iterable, List, Optional

from flask import current_app

from .errors import DocumentNotFoundError
from .records import (
    SCORE_FACETS,
    BadgeProgress,
    Gamification,
    Speech,
    User,
    badge_counts,
    map_badge_progress,
    map_gamification,
    map_speech,
    map_user,
)
from .store import BlobRef, BlobStore, DocumentStore, Timestamp

USERS = "users"
SPEECH_HISTORY = "speechHistory"
# older app builds wrote the same records here; both are user dependents
LEGACY_SPEECHES = "speeches"
GAMIFICATION = "userGamification"
BADGES = "userBadges"

ROLES = ("user", "admin")

# python field -> stored key
USER_EDITABLE_FIELDS = {
    "first_name": "firstName",
    "last_name": "lastName",
    "age": "age",
    "gender": "gender",
    "phone_number": "phoneNumber",
    "bio": "bio",
    "interests": "interests",
    "role": "role",
}

SPEECH_EDITABLE_FIELDS = {
    "transcript": "transcript",
    "speech_type": "speechType",
    "duration": "duration",
    "word_count": "wordCount",
    "average_pace": "averagePace",
}

GAMIFICATION_FIELDS = {
    "level": "level",
    "current_xp": "currentXP",
    "total_xp": "totalXP",
    "current_streak": "currentStreak",
    "longest_streak": "longestStreak",
}


def path_segment(value: Any, what: str = "uid") -> str:
    """A single path segment; ids with "/" would address another partition."""
    if not isinstance(value, str) or not value or "/" in value:
        raise ValueError(f"invalid {what}: {value!r}")
    return value


def user_path(uid: str) -> str:
    return f"{USERS}/{path_segment(uid)}"


def speech_collection(uid: str, collection: str = SPEECH_HISTORY) -> str:
    return f"{user_path(uid)}/{path_segment(collection, 'collection')}"


def speech_path(uid: str, speech_id: str, collection: str = SPEECH_HISTORY) -> str:
    return f"{speech_collection(uid, collection)}/{path_segment(speech_id, 'speech id')}"


def speech_blob_prefix(uid: str, collection: str = LEGACY_SPEECHES) -> str:
    return speech_collection(uid, collection)


def gamification_path(uid: str) -> str:
    return f"{GAMIFICATION}/{path_segment(uid)}"


def badges_path(uid: str) -> str:
    return f"{BADGES}/{path_segment(uid)}"


def _validate_role(role: str) -> None:
    if role not in ROLES:
        raise ValueError(f"role must be one of {', '.join(ROLES)}")


def _pick(partial: Dict[str, Any], fields: Dict[str, str]) -> Dict[str, Any]:
    return {stored: partial[name] for name, stored in fields.items() if name in partial}


class AdminRepository:
    def __init__(self, documents: Optional[DocumentStore] = None, blobs: Optional[BlobStore] = None):
        self.documents = documents or DocumentStore()
        self.blobs = blobs or BlobStore()

    # ------------------------------
    # Users
    # ------------------------------
    def get_all_users(self) -> List[User]:
        return [map_user(snap) for snap in self.documents.list(USERS)]

    def get_user(self, uid: str) -> Optional[User]:
        snap = self.documents.get(user_path(uid))
        if not snap.exists:
            return None
        return map_user(snap)

    def create_user(
        self,
        uid: str,
        email: str,
        first_name: str = "",
        last_name: str = "",
        role: str = "user",
    ) -> User:
        _validate_role(role)
        now = Timestamp.now()
        self.documents.set(
            user_path(uid),
            {
                "email": email,
                "firstName": first_name,
                "lastName": last_name,
                "role": role,
                "createdAt": now,
                "updatedAt": now,
            },
        )
        return self.get_user(uid)

    def update_user(self, uid: str, partial: Dict[str, Any]) -> None:
        """Merges the editable profile fields present in ``partial``;
        ``updatedAt`` is always stamped."""
        if "role" in partial:
            _validate_role(partial["role"])
        data = _pick(partial, USER_EDITABLE_FIELDS)
        data["updatedAt"] = Timestamp.now()
        self.documents.update(user_path(uid), data)

    def set_user_role(self, uid: str, role: str) -> None:
        _validate_role(role)
        self.documents.update(user_path(uid), {"role": role, "updatedAt": Timestamp.now()})

    def delete_user_document(self, uid: str) -> None:
        self.documents.delete(user_path(uid))

    def is_admin(self, uid: str) -> bool:
        try:
            path = user_path(uid)
        except ValueError:
            return False
        snap = self.documents.get(path)
        return snap.exists and snap.get("role") == "admin"

    def has_any_admin(self) -> bool:
        return any(snap.get("role") == "admin" for snap in self.documents.list(USERS))

    def create_admin_profile(self, uid: str, email: str, first_name: str, last_name: str) -> User:
        current_app.logger.info(f"[admin-setup] creating admin profile uid={uid}")
        return self.create_user(uid, email, first_name, last_name, role="admin")

    # ------------------------------
    # Speeches
    # ------------------------------
    def get_user_speeches(self, uid: str) -> List[Speech]:
        """Speech history of one user, newest first."""
        snaps = self.documents.list(
            speech_collection(uid), order_by="createdAt", descending=True
        )
        return [map_speech(snap, uid) for snap in snaps]

    def get_all_speeches(self, users: Optional[Iterable[User]] = None) -> List[Speech]:
        if users is None:
            users = self.get_all_users()

        speeches: List[Speech] = []
        for user in users:
            for speech in self.get_user_speeches(user.uid):
                speech.user_name = user.display_name
                speeches.append(speech)

        speeches.sort(key=lambda s: s.created_at, reverse=True)
        return speeches

    def get_speech(self, uid: str, speech_id: str) -> Optional[Speech]:
        snap = self.documents.get(speech_path(uid, speech_id))
        if not snap.exists:
            return None
        return map_speech(snap, uid)

    def update_speech(self, uid: str, speech_id: str, partial: Dict[str, Any]) -> None:
        data = _pick(partial, SPEECH_EDITABLE_FIELDS)
        scores = partial.get("scores") or {}
        for facet in SCORE_FACETS:
            if facet in scores:
                data[f"scores.{facet}"] = scores[facet]
        if not data:
            return
        self.documents.update(speech_path(uid, speech_id), data)

    def delete_speech(self, uid: str, speech_id: str) -> None:
        self.delete_speech_document(uid, SPEECH_HISTORY, speech_id)

    def list_speech_ids(self, uid: str, collection: str = SPEECH_HISTORY) -> List[str]:
        return [snap.id for snap in self.documents.list(speech_collection(uid, collection))]

    def delete_speech_document(self, uid: str, collection: str, speech_id: str) -> None:
        self.documents.delete(speech_path(uid, speech_id, collection))

    # ------------------------------
    # Gamification
    # ------------------------------
    def get_user_gamification(self, uid: str) -> Optional[Gamification]:
        snap = self.documents.get(gamification_path(uid))
        if not snap.exists:
            return None
        return map_gamification(snap, uid)

    def update_user_gamification(self, uid: str, partial: Dict[str, Any]) -> None:
        path = gamification_path(uid)
        data = _pick(partial, GAMIFICATION_FIELDS)
        if self.documents.get(path).exists:
            if data:
                self.documents.update(path, data)
        else:
            self.documents.set(path, {"userId": uid, **data})

    def delete_user_gamification(self, uid: str) -> bool:
        path = gamification_path(uid)
        if not self.documents.get(path).exists:
            return False
        self.documents.delete(path)
        return True

    # ------------------------------
    # Badges
    # ------------------------------
    def get_user_badges(self, uid: str) -> Optional[BadgeProgress]:
        snap = self.documents.get(badges_path(uid))
        if not snap.exists:
            return None
        return map_badge_progress(snap, uid)

    def update_user_badges(self, uid: str, badges: List[Dict[str, Any]]) -> BadgeProgress:
        """Writes the badge list; the summary counts are always recomputed
        here and never taken from the caller."""
        path = badges_path(uid)
        badges = [dict(b) for b in badges]
        total, unlocked = badge_counts(badges)
        data = {"badges": badges, "unlockedBadges": unlocked, "totalBadges": total}
        if self.documents.get(path).exists:
            self.documents.update(path, data)
        else:
            self.documents.set(path, {"userId": uid, **data})
        return BadgeProgress(user_id=uid, badges=badges)

    def set_badge_unlocked(self, uid: str, badge_id: str, unlocked: Optional[bool] = None) -> BadgeProgress:
        """Locks/unlocks one badge (toggles when ``unlocked`` is None)."""
        progress = self.get_user_badges(uid)
        if progress is None:
            raise DocumentNotFoundError(badges_path(uid))

        badges = [dict(b) for b in progress.badges]
        for badge in badges:
            if str(badge.get("id")) == str(badge_id):
                badge["isUnlocked"] = (not badge.get("isUnlocked")) if unlocked is None else bool(unlocked)
                break
        else:
            raise KeyError(badge_id)

        return self.update_user_badges(uid, badges)

    def delete_user_badges(self, uid: str) -> bool:
        path = badges_path(uid)
        if not self.documents.get(path).exists:
            return False
        self.documents.delete(path)
        return True

    # ------------------------------
    # Blobs
    # ------------------------------
    def list_blobs_under_prefix(self, path: str) -> List[BlobRef]:
        return self.blobs.list_under_prefix(path)

    def delete_blob(self, ref: BlobRef) -> None:
        self.blobs.delete(ref)
