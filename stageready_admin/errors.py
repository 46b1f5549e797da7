# backend/stageready_admin/errors.py


class StoreError(Exception):
    """A document or blob store call failed (network, database, driver)."""


class DocumentNotFoundError(StoreError):
    def __init__(self, path: str):
        super().__init__(f"document not found: {path}")
        self.path = path


class CascadeDeleteError(Exception):
    """A document step of a user cascade failed; the user document is intact."""

    def __init__(self, uid: str, step: str):
        super().__init__(f"cascade delete of user {uid} failed at step '{step}'")
        self.uid = uid
        self.step = step
