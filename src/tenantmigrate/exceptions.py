"""
Exceptions for the tenant migration engine.

Every failure the engine raises derives from MigrationError and carries an
ErrorKind, so the worker (and operators reading the logs) can tell a missing
tenant from a quota refusal or a broken invariant without string matching.

Exception Hierarchy:
    MigrationError (base)
    +-- TenantNotFoundError          [NOT_FOUND]
    +-- UserNotFoundError            [NOT_FOUND]
    +-- QuotaNotConfiguredError      [NOT_FOUND]
    +-- RequestNotFoundError         [NOT_FOUND]
    +-- UsernameExistsError          [CONFLICT]
    +-- AliasUnavailableError        [CONFLICT]
    +-- QuotaExceededError           [QUOTA_EXCEEDED]
    +-- TableArchiveError            [TRANSIENT_STORE]
    +-- TableRestoreError            [TRANSIENT_STORE]
    +-- BlobCopyError                [TRANSIENT_STORE]
    +-- UnmappedReferenceError       [INVARIANT]
    +-- ColumnMappingError           [INVARIANT]
    +-- InvalidStatusTransitionError [INVARIANT]
    +-- ArchiveError
    |   +-- ArchiveEntryNotFoundError
    +-- UnknownRegionError
    +-- RetryError
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any


class ErrorKind(Enum):
    """
    Coarse classification of migration failures.

    Attributes:
        NOT_FOUND: A tenant, user or quota the job depends on is absent.
        CONFLICT: The destination already holds the identity being moved.
        QUOTA_EXCEEDED: Pre-flight size or seat check refused the job.
        TRANSIENT_STORE: A store read or write failed.
        INVARIANT: The catalog or mapper is inconsistent (a bug, not a
            runtime condition).
        INTERNAL: Anything else raised by the engine itself.
    """

    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    QUOTA_EXCEEDED = "quota_exceeded"
    TRANSIENT_STORE = "transient_store"
    INVARIANT = "invariant"
    INTERNAL = "internal"

    @property
    def log_level(self) -> int:
        """Logging level used when a failure of this kind ends a job."""
        if self in (ErrorKind.INVARIANT, ErrorKind.INTERNAL):
            return logging.CRITICAL
        if self == ErrorKind.TRANSIENT_STORE:
            return logging.ERROR
        return logging.WARNING


class MigrationError(Exception):
    """Base exception for all migration failures."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the error to a dictionary for structured logging.

        Returns:
            Dictionary with the error type, kind, message and details.
        """
        return {
            "error_type": type(self).__name__,
            "kind": self.kind.value,
            "message": self.message,
            **{k: str(v) for k, v in self.details.items()},
        }


class TenantNotFoundError(MigrationError):
    """Raised when a tenant alias does not resolve in a region."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, alias: str, region: str = "") -> None:
        self.alias = alias
        self.region = region
        super().__init__(
            f"Tenant '{alias}' was not found in region '{region or 'default'}'",
            alias=alias,
            region=region,
        )


class UserNotFoundError(MigrationError):
    """Raised when no active user matches the requested username/email."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, tenant_id: int, user_name: str | None, email: str | None) -> None:
        self.tenant_id = tenant_id
        self.user_name = user_name
        self.email = email
        super().__init__(
            f"Active user (username={user_name!r}, email={email!r}) "
            f"was not found in tenant {tenant_id}",
            tenant_id=tenant_id,
        )


class RequestNotFoundError(MigrationError):
    """Raised when a migration request id does not exist."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, request_id: int) -> None:
        self.request_id = request_id
        super().__init__(f"Migration request {request_id} not found", request_id=request_id)


class QuotaNotConfiguredError(MigrationError):
    """Raised when the destination region has no quota row to check against."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, quota_id: int, region: str) -> None:
        self.quota_id = quota_id
        self.region = region
        super().__init__(
            f"Quota {quota_id} is not configured in region '{region or 'default'}'",
            quota_id=quota_id,
            region=region,
        )


class UsernameExistsError(MigrationError):
    """Raised when the user's identity already exists at the destination."""

    kind = ErrorKind.CONFLICT

    def __init__(self, user_name: str, email: str, alias: str) -> None:
        self.user_name = user_name
        self.email = email
        self.alias = alias
        super().__init__(
            f"User '{user_name}' <{email}> already exists in portal '{alias}'",
            alias=alias,
        )


class AliasUnavailableError(MigrationError):
    """Raised when a placeholder tenant cannot reserve the resolved alias."""

    kind = ErrorKind.CONFLICT

    def __init__(self, alias: str, region: str) -> None:
        self.alias = alias
        self.region = region
        super().__init__(
            f"Alias '{alias}' could not be reserved in region '{region or 'default'}'",
            alias=alias,
            region=region,
        )


class QuotaExceededError(MigrationError):
    """Raised when the pre-flight size or admin-seat check fails."""

    kind = ErrorKind.QUOTA_EXCEEDED

    def __init__(self, resource: str, requested: int, limit: int) -> None:
        self.resource = resource
        self.requested = requested
        self.limit = limit
        super().__init__(
            f"Quota exceeded for {resource}: requested {requested}, limit {limit}",
            resource=resource,
            requested=requested,
            limit=limit,
        )


class TableArchiveError(MigrationError):
    """Raised when a table cannot be read from the source store."""

    kind = ErrorKind.TRANSIENT_STORE

    def __init__(self, table: str, reason: str) -> None:
        self.table = table
        self.reason = reason
        super().__init__(f"Cannot archive table {table}: {reason}", table=table)


class TableRestoreError(MigrationError):
    """Raised when a table cannot be replayed into the destination store."""

    kind = ErrorKind.TRANSIENT_STORE

    def __init__(self, table: str, reason: str) -> None:
        self.table = table
        self.reason = reason
        super().__init__(f"Cannot restore table {table}: {reason}", table=table)


class BlobCopyError(MigrationError):
    """Raised when a single blob cannot be copied."""

    kind = ErrorKind.TRANSIENT_STORE

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot copy blob {path}: {reason}", path=path)


class UnmappedReferenceError(MigrationError):
    """Raised when a remapped reference is written without a mapping."""

    kind = ErrorKind.INVARIANT

    def __init__(self, table: str, column: str, value: Any) -> None:
        self.table = table
        self.column = column
        self.value = value
        super().__init__(
            f"No mapping for {table}.{column} = {value!r}",
            table=table,
            column=column,
        )


class ColumnMappingError(MigrationError):
    """Raised when a committed mapping would be overwritten."""

    kind = ErrorKind.INVARIANT

    def __init__(self, table: str, column: str, old_value: Any, existing: Any, new: Any) -> None:
        self.table = table
        self.column = column
        super().__init__(
            f"Mapping {table}.{column}[{old_value!r}] is committed as {existing!r}, "
            f"cannot remap to {new!r}",
            table=table,
            column=column,
        )


class InvalidStatusTransitionError(MigrationError):
    """Raised when a request status transition is not allowed."""

    kind = ErrorKind.INVARIANT

    def __init__(self, request_id: int, current: Any, target: Any) -> None:
        self.request_id = request_id
        self.current = current
        self.target = target
        super().__init__(
            f"Invalid status transition for request {request_id}: "
            f"{getattr(current, 'value', current)} -> {getattr(target, 'value', target)}",
            request_id=request_id,
        )


class ArchiveError(MigrationError):
    """Raised when the archive container is malformed or misused."""


class ArchiveEntryNotFoundError(ArchiveError):
    """Raised when a required archive entry is missing."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Archive entry not found: {key}", key=key)


class UnknownRegionError(MigrationError):
    """Raised when a region has no configured database."""

    def __init__(self, region: str) -> None:
        self.region = region
        super().__init__(f"Region '{region or 'default'}' is not configured", region=region)


class RetryError(MigrationError):
    """Raised when every attempt of a retried operation failed."""

    kind = ErrorKind.TRANSIENT_STORE

    def __init__(self, operation: str, attempts: int, last_error: BaseException) -> None:
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"{operation} failed after {attempts} attempts: {last_error}",
            operation=operation,
            attempts=attempts,
        )


__all__ = [
    "ErrorKind",
    "MigrationError",
    "TenantNotFoundError",
    "UserNotFoundError",
    "QuotaNotConfiguredError",
    "RequestNotFoundError",
    "UsernameExistsError",
    "AliasUnavailableError",
    "QuotaExceededError",
    "TableArchiveError",
    "TableRestoreError",
    "BlobCopyError",
    "UnmappedReferenceError",
    "ColumnMappingError",
    "InvalidStatusTransitionError",
    "ArchiveError",
    "ArchiveEntryNotFoundError",
    "UnknownRegionError",
    "RetryError",
]
