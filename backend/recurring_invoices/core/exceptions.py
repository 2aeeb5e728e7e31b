"""Exception hierarchy for recurring invoice generation."""


class RecurringBillingError(Exception):
    """Base class for recurring billing failures."""


class ConfigurationError(RecurringBillingError, ValueError):
    """A template is misconfigured and cannot be processed."""


class InvalidIntervalError(ConfigurationError):
    """A template interval is not a positive integer."""


class InvalidTemplateItemsError(ConfigurationError):
    """A template has missing or malformed line items."""


class TransientPersistenceError(RecurringBillingError):
    """The generation transaction aborted (timeout, lock wait or write conflict)."""


class TransactionTimeoutError(TransientPersistenceError):
    pass


class ConcurrentModificationError(TransientPersistenceError):
    """Another writer changed the template or its usage records first."""


class NotificationError(RecurringBillingError):
    """The notification dispatcher could not deliver a message."""


class EligibilityQueryError(RecurringBillingError):
    """Eligible templates could not be enumerated; the whole run is aborted."""
