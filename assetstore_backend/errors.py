from __future__ import annotations


class AssetStoreError(Exception):
    """Base class for failures surfaced to HTTP callers."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidRequest(AssetStoreError):
    status_code = 400


class PayloadTooLarge(AssetStoreError):
    status_code = 413


class NotFound(AssetStoreError):
    status_code = 404


class IntegrityMismatch(AssetStoreError):
    """Bytes on disk do not match the payload that was sent."""

    status_code = 500

    def __init__(self, path: str, expected: int, actual: int) -> None:
        super().__init__(f"Stored size {actual} does not match payload size {expected} for {path}")
        self.path = path
        self.expected = expected
        self.actual = actual


class StorageError(AssetStoreError):
    """Directory creation, write or read-back failed."""

    status_code = 500


class StoreInconsistency(AssetStoreError):
    """More than one document exists for a session id."""

    status_code = 500


class DuplicateSession(AssetStoreError):
    status_code = 409
