# marketplace/domain/errors.py


class MarketplaceError(Exception):
    """Base class for domain errors raised by the services."""


class ValidationError(MarketplaceError, ValueError):
    """Bad input: empty cart, invalid quantity, non-positive amount."""


class NotFoundError(MarketplaceError, LookupError):
    pass


class ConcurrencyConflict(MarketplaceError):
    """Raised only when a race cannot be resolved by re-reading the winner."""


class InsufficientFunds(MarketplaceError):
    def __init__(self, user_id: str, requested, available):
        self.user_id = user_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient available balance for {user_id}: requested {requested}, available {available}"
        )


class PaymentGatewayError(MarketplaceError):
    pass


class InvalidTransition(MarketplaceError):
    def __init__(self, axis: str, current, target):
        self.axis = axis
        self.current = current
        self.target = target
        super().__init__(f"Cannot move {axis} from {current} to {target}")


class PersistenceFailure(MarketplaceError):
    pass
