"""Backend for the session asset store.

This package intentionally keeps FastAPI route handlers thin:
- file persistence under a per-session directory
- a small document database holding the asset index per session
- the write-verify-commit pipeline and the retrieval path

Session IDs are opaque and assigned by clients. They are validated as plain
path segments before they ever touch the filesystem.
"""
