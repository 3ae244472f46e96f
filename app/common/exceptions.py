"""Domain exceptions for the billing core."""


class BillarServiceError(Exception):
    """Base exception for all billing core errors."""
    pass


class TenantNotFoundError(BillarServiceError):
    """Tenant does not exist."""
    pass


class TableNotFoundError(BillarServiceError):
    """Table does not exist or belongs to another tenant."""
    pass


class SessionNotFoundError(BillarServiceError):
    """Usage session does not exist or belongs to another tenant."""
    pass


class InvalidSessionStateError(BillarServiceError):
    """Operation not allowed in the current session or table state."""
    pass


class MemberNotFoundError(BillarServiceError):
    """Member does not exist or belongs to another tenant."""
    pass


class ProductNotFoundError(BillarServiceError):
    """Product does not exist or belongs to another tenant."""
    pass


class ImmutableRecordError(BillarServiceError):
    """Attempt to update or delete an append-only record."""
    pass


class ConcurrentClosureError(BillarServiceError):
    """Another closure claimed some of the selected sessions first."""
    pass


class DocumentEmissionTimeout(BillarServiceError):
    """Fiscal document provider did not answer within the caller's timeout."""
    pass
