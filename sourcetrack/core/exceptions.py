"""
Service-layer exception hierarchy.

Services raise these; the app-level error handlers registered in
``sourcetrack.create_app`` translate them to HTTP responses once, so
blueprints never map status codes by hand.

Usage:
    from sourcetrack.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Stage", resource_id=42)
    raise ValidationError("Invalid data", details={"reason": "..."})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the caller's company.

    Used for BOTH genuinely missing records AND cross-company access, so a
    response never confirms that another tenant's record exists.

    Args:
        resource: Human-readable entity name (e.g. "Project", "Stage").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
        company_id: Optional scope that was enforced. For debug logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        company_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.company_id = company_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if company_id is not None:
            msg += f" (company={company_id})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is malformed or violates a business rule.

    Maps to HTTP 400.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown. Keys are field names;
                 values are error descriptions.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would violate a uniqueness rule.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value=None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")


class PermissionDeniedError(Exception):
    """Raised when the caller is known but lacks role or ownership. Maps to HTTP 403."""

    def __init__(self, message: str = "Insufficient permissions") -> None:
        super().__init__(message)


class NoCompanyError(PermissionDeniedError):
    """Raised when a company-scoped operation is called by a user without a company.

    Maps to HTTP 403 with machine code ``NO_COMPANY`` so the client can
    redirect to onboarding.
    """

    def __init__(self, message: str = "Please complete onboarding first") -> None:
        super().__init__(message)


class ExternalServiceError(Exception):
    """Raised when an outbound provider (translation) is unavailable or fails.

    Args:
        message: Explanation for the caller.
        status_code: 503 when the provider is not configured, 502 when it failed.
    """

    def __init__(self, message: str, status_code: int = 502) -> None:
        self.status_code = status_code
        super().__init__(message)
