"""Domain exceptions raised by the outreach services."""


class OutreachError(Exception):
    """Base class for outreach service errors."""


class GatewayConfigError(OutreachError):
    """APNs signing key or credentials are missing or invalid.

    Raised while constructing the gateway client; the service does not start.
    """


class DeviceNotFoundError(OutreachError):
    """No device is registered under the given token."""


class SchedulerNotRunningError(OutreachError):
    """The scheduler is stopped and no longer accepts jobs or events."""


class JobNotFoundError(OutreachError):
    """No pending job exists with the given id."""
