"""Error taxonomy for the ledgermock service hub.

Configuration and provisioning errors are raised while a registry is being
built and are never retried. Lookup errors always name the offending type or
state reference.
"""


class LedgerMockError(Exception):
    """Base class for all ledgermock errors."""


class ConfigurationError(LedgerMockError):
    """A data-source property is missing or malformed."""


class ProvisioningError(LedgerMockError):
    """The backing store could not be opened or migrated."""


class UnsupportedOperation(LedgerMockError, NotImplementedError):
    """A node capability the mock services deliberately do not provide."""


class ServiceLookupError(LedgerMockError, LookupError):
    """Base class for application service lookup failures."""

    def __init__(self, message: str, type_id: str):
        super().__init__(message)
        self.type_id = type_id


class ServiceNotFound(ServiceLookupError):
    """No instance was ever registered for the requested service type."""


class InvalidServiceType(ServiceLookupError):
    """The requested type does not carry the application service marker."""


class UnresolvedReference(LedgerMockError, LookupError):
    """A state reference points at an unknown transaction or output index."""

    def __init__(self, ref: object, reason: str = ""):
        message = f"Unresolved state reference {ref}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.ref = ref
