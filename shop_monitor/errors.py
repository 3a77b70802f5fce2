"""Error taxonomy for the shop monitor."""


class ShopMonitorError(Exception):
    """Base class for monitor errors."""


class SubsystemUnavailable(ShopMonitorError):
    """The monitored catalog platform is not installed or not active."""


class ProbeFailure(ShopMonitorError):
    """The catalog probe could not produce a verdict."""


class RemediationBackendFailure(ShopMonitorError):
    """A cache-invalidation backend failed while flushing."""

    def __init__(self, backend_name: str, message: str):
        super().__init__(f"{backend_name}: {message}")
        self.backend_name = backend_name


class NotificationChannelFailure(ShopMonitorError):
    """An alert channel failed to deliver a message."""

    def __init__(self, channel_name: str, message: str):
        super().__init__(f"{channel_name}: {message}")
        self.channel_name = channel_name
