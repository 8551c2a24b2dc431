"""Persistence backends: the Postgres pool and the MinIO object store."""
