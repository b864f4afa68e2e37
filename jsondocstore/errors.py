from __future__ import annotations


class DataStoreError(Exception):
    """Base class for errors raised by jsondocstore."""


class QueryError(DataStoreError, ValueError):
    """A filter passed to `DataStore.find` could not be compiled."""
