from __future__ import annotations

"""Error taxonomy for the analyze / import request paths.

Each class carries the HTTP-equivalent status code the external web layer
should answer with (see services.endpoints.error_response). Partial imports
are NOT an exception: they are reported as ImportBatch.status == "partial".
"""

__all__ = [
    "IngestError",
    "ValidationError",
    "LayoutMismatchError",
    "AuthorizationError",
    "ConfigurationError",
    "CredentialError",
    "SchemaMissingError",
    "FatalImportError",
]


class IngestError(Exception):
    """Base class for all request-level errors."""

    status_code = 500


class ValidationError(IngestError):
    """Missing file, empty sheet, no header row, no importable rows."""

    status_code = 400


class LayoutMismatchError(ValidationError):
    """Header row no longer matches the expected fixed-position legacy layout."""


class AuthorizationError(IngestError):
    """Caller lacks project access (raised by the external auth collaborator)."""

    status_code = 403


class ConfigurationError(IngestError):
    """Target datastore unreachable or uncredentialed."""

    status_code = 400

    def __init__(self, message: str, remediation: str | None = None) -> None:
        super().__init__(message)
        self.remediation = remediation


class CredentialError(IngestError):
    """Secret decryption failed. Message must never include secret material."""

    status_code = 500


class SchemaMissingError(IngestError):
    """Target table absent. Carries a ready-to-run provisioning script."""

    status_code = 400

    def __init__(self, table: str, setup_sql: str) -> None:
        super().__init__(f"Table {table} does not exist")
        self.table = table
        self.setup_sql = setup_sql


class FatalImportError(IngestError):
    """Unexpected exception mid-run. The batch is logged as failed before this propagates."""

    status_code = 500

    def __init__(self, message: str, batch_id: str | None = None) -> None:
        super().__init__(message)
        self.batch_id = batch_id
