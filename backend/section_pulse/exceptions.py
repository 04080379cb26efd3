class SectionPulseError(Exception):
    """Base exception for section pulse tracking errors."""

    pass


class PulseStoreError(SectionPulseError):
    """Storage operation failed (lock timeout, lost connection, constraint error)."""

    def __init__(self, message: str, tenant: str | None = None):
        super().__init__(message)
        self.tenant = tenant


class TenantNotFoundError(SectionPulseError):
    """Tenant is unknown, its schema is gone, or it has no section_pulse table."""

    def __init__(self, message: str, tenant: str | None = None):
        super().__init__(message)
        self.tenant = tenant


class ConfigurationError(SectionPulseError):
    """Invalid or incomplete configuration."""

    pass
