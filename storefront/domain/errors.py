# storefront/domain/errors.py


class StorefrontError(Exception):
    """Base for every error the services raise on purpose."""


class NotFoundError(StorefrontError, LookupError):
    pass


class ValidationError(StorefrontError, ValueError):
    pass


class DuplicateItemError(ValidationError):
    """A locked fixed-weight unit is already in the cart."""


class ImmutableWeightError(ValidationError):
    """Weight of a locked item cannot change."""


class InvalidTransitionError(StorefrontError):
    def __init__(self, source: str, target: str, reason: str | None = None):
        self.source = source
        self.target = target
        message = f"Invalid order status transition {source} -> {target}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ProcessorError(StorefrontError):
    """Payment processor unreachable, misconfigured or returned a failure envelope."""


class DuplicateMaterializationError(StorefrontError):
    """
    Staging token already consumed (or being consumed).
    Callers treat it as success; order_id is set when the first run finished.
    """

    def __init__(self, token: str, order_id: str | None = None):
        self.token = token
        self.order_id = order_id
        super().__init__(f"Staging record {token} already materialized")


class MaterializationError(StorefrontError):
    """Payment is confirmed but the order could not be written."""
