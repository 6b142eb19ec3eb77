"""
Data models for the tenant migration engine.

Enums:
    - MigrationStatus: Lifecycle of a queued migration request
    - TenantStatus: Status column of tenants_tenants
    - UserStatus: Status column of core_user

Configuration:
    - MigrationConfig: Tuning knobs for extraction, discovery and restore

Core Models:
    - MigrationRequest: One queued migration job
    - BackupFileInfo: Location of one blob captured in the archive
    - CreateResult: Outcome of extraction
    - RestoreResult: Outcome of restore
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any

# Quota id of the default (trial) plan in every region.
TRIAL_QUOTA_ID = -3

# Administrator group every portal owner belongs to.
ADMIN_GROUP_ID = "cd84e66b-b803-40fc-99f9-b2969a54a1de"

# Tag of the storage usage counter written to tenants_quotarow.
FILES_QUOTA_TAG = "e67be73d-f9ae-4ce1-8fec-1880cb518cb4"
FILES_QUOTA_PATH = "/files/"

EMPTY_USER_ID = "00000000-0000-0000-0000-000000000000"

# Open-ended tariff expiry.
MAX_TARIFF_STAMP = datetime(9999, 12, 31, 23, 59, 59)

FILES_PER_FOLDER = 1000


class MigrationStatus(Enum):
    """
    Lifecycle of a migration request.

    State machine transitions:
        PENDING -> IN_WORK -> SUCCESS
                      |
                      +----> ERROR
    """

    PENDING = "pending"
    """Queued, not yet picked up by the worker."""

    IN_WORK = "in_work"
    """Claimed by the worker; extraction or restore in progress."""

    SUCCESS = "success"
    """Restore completed; the resulting alias is recorded."""

    ERROR = "error"
    """The job raised; details are in the worker log."""

    @property
    def is_terminal(self) -> bool:
        """Check if this status can no longer change."""
        return self in (MigrationStatus.SUCCESS, MigrationStatus.ERROR)

    def can_transition_to(self, target: MigrationStatus) -> bool:
        """
        Check if transition to target status is valid.

        Args:
            target: The status to move to.

        Returns:
            True if the transition is valid.
        """
        valid_transitions: dict[MigrationStatus, tuple[MigrationStatus, ...]] = {
            MigrationStatus.PENDING: (MigrationStatus.IN_WORK,),
            MigrationStatus.IN_WORK: (MigrationStatus.SUCCESS, MigrationStatus.ERROR),
        }
        return target in valid_transitions.get(self, ())


class TenantStatus(IntEnum):
    """Values of tenants_tenants.status."""

    ACTIVE = 0
    SUSPENDED = 1
    REMOVE_PENDING = 2
    TRANSFERRING = 3


class UserStatus(IntEnum):
    """Values of core_user.status."""

    ACTIVE = 1
    TERMINATED = 2


@dataclass(frozen=True)
class MigrationConfig:
    """
    Configuration for a single migration run.

    Immutable so a run cannot change its own limits halfway through.

    Attributes:
        page_size: Rows fetched per select while archiving a table.
        discovery_concurrency: Blob listings in flight at once.
        file_copy_attempts: Attempts per blob before it is skipped.
        table_restore_attempts: Attempts per table before restore aborts.
        retry_delay_seconds: Base delay between attempts.
        query_timeout_seconds: Upper bound for one page query.
        alias_min_length: Shortest acceptable portal alias.
        alias_max_length: Longest acceptable portal alias.
        alias_prefix: Product tag prepended to aliases that are too short.

    Example:
        >>> config = MigrationConfig(page_size=500)
        >>> config.page_size
        500
    """

    page_size: int = 1000
    discovery_concurrency: int = 20
    file_copy_attempts: int = 5
    table_restore_attempts: int = 5
    retry_delay_seconds: float = 0.5
    query_timeout_seconds: float = 600.0
    alias_min_length: int = 3
    alias_max_length: int = 100
    alias_prefix: str = "portal"

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.page_size < 1:
            raise ValueError(f"page_size must be >= 1, got {self.page_size}")
        if self.discovery_concurrency < 1:
            raise ValueError(
                f"discovery_concurrency must be >= 1, got {self.discovery_concurrency}"
            )
        if self.file_copy_attempts < 1:
            raise ValueError(f"file_copy_attempts must be >= 1, got {self.file_copy_attempts}")
        if self.table_restore_attempts < 1:
            raise ValueError(
                f"table_restore_attempts must be >= 1, got {self.table_restore_attempts}"
            )
        if self.retry_delay_seconds < 0:
            raise ValueError(
                f"retry_delay_seconds must be >= 0, got {self.retry_delay_seconds}"
            )
        if self.query_timeout_seconds <= 0:
            raise ValueError(
                f"query_timeout_seconds must be positive, got {self.query_timeout_seconds}"
            )
        if not 1 <= self.alias_min_length <= self.alias_max_length:
            raise ValueError(
                f"alias length bounds are invalid: "
                f"[{self.alias_min_length}, {self.alias_max_length}]"
            )
        if not self.alias_prefix.isalnum() or not self.alias_prefix.islower():
            raise ValueError(f"alias_prefix must be lower-case [a-z0-9], got {self.alias_prefix!r}")
        if len(self.alias_prefix) < self.alias_min_length:
            raise ValueError("alias_prefix must be at least alias_min_length characters long")


@dataclass
class MigrationRequest:
    """
    A queued request to migrate one user.

    Attributes:
        id: Row id in migration_requests.
        email: Email of the user to migrate.
        status: Current lifecycle status.
        request_date: When the request was queued.
        start_date: When the worker claimed it.
        end_date: When the worker finished with it.
        alias: Alias of the destination portal, set on success.
    """

    id: int
    email: str
    status: MigrationStatus = MigrationStatus.PENDING
    request_date: datetime | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    alias: str | None = None


@dataclass(frozen=True)
class BackupFileInfo:
    """
    Location of one blob captured in the archive.

    Instances compare by value, so duplicate discoveries collapse when
    deduplicated.

    Attributes:
        domain: Storage domain within the module ("" for the default domain).
        module: Storage module name (e.g. "files").
        path: Path relative to the domain root, "/"-separated.
        tenant_id: Tenant that owned the blob at the source.
    """

    domain: str
    module: str
    path: str
    tenant_id: int

    @property
    def archive_key(self) -> str:
        """Key of the blob's entry in the archive."""
        parts = [part.strip("/") for part in (self.module, self.domain, self.path)]
        return "/".join(["storage", *(part for part in parts if part)])

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the archive manifest."""
        return {
            "domain": self.domain,
            "module": self.module,
            "path": self.path,
            "tenant": self.tenant_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BackupFileInfo:
        """Deserialize a manifest record."""
        return cls(
            domain=data.get("domain") or "",
            module=data["module"],
            path=data["path"],
            tenant_id=int(data["tenant"]),
        )


@dataclass(frozen=True)
class CreateResult:
    """
    Result of extracting a user into an archive.

    Attributes:
        archive_path: Path of the written archive.
        new_alias: Alias reserved for a new destination tenant (None on merge).
        total_size: Sum of the user's file content lengths in bytes.
        tables_archived: Number of table snapshots written.
        files_archived: Number of blobs written.
        files_failed: Blobs skipped after exhausting their attempts.
    """

    archive_path: str
    new_alias: str | None
    total_size: int
    tables_archived: int = 0
    files_archived: int = 0
    files_failed: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class RestoreResult:
    """
    Result of replaying an archive.

    Attributes:
        alias: Alias of the destination tenant.
        tenant_id: Id of the destination tenant.
        rows_restored: Rows written across all tables.
        files_restored: Blobs written to the destination.
    """

    alias: str
    tenant_id: int
    rows_restored: int = 0
    files_restored: int = 0


def bucket_directory(file_id: int) -> str:
    """
    Directory holding a file's blobs: folder_{(id // 1000 + 1) * 1000}/file_{id}.

    Exact multiples of 1000 open the next bucket, so file 1000 lives in
    folder_2000 alongside 1001..1999.

    Raises:
        ValueError: If file_id is not positive.
    """
    if file_id <= 0:
        raise ValueError(f"file id must be positive, got {file_id}")
    bucket = (file_id // FILES_PER_FOLDER + 1) * FILES_PER_FOLDER
    return f"folder_{bucket}/file_{file_id}"


__all__ = [
    "TRIAL_QUOTA_ID",
    "ADMIN_GROUP_ID",
    "FILES_QUOTA_TAG",
    "FILES_QUOTA_PATH",
    "EMPTY_USER_ID",
    "MAX_TARIFF_STAMP",
    "MigrationStatus",
    "TenantStatus",
    "UserStatus",
    "MigrationConfig",
    "MigrationRequest",
    "BackupFileInfo",
    "CreateResult",
    "RestoreResult",
    "bucket_directory",
]
