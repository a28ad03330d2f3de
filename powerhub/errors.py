"""
Exception hierarchy for the powerhub gateway.

Every error raised by a core component derives from PowerHubError and
carries the HTTP status the transport layer answers with.
"""


class PowerHubError(Exception):
    """Base exception for all gateway errors"""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(PowerHubError):
    """Unknown node, schedule or log file"""

    status_code = 404


class ConflictError(PowerHubError):
    """Duplicate registration"""

    status_code = 409


class InvalidArgumentError(PowerHubError):
    """Malformed relay state, schedule, timer or telemetry input"""

    status_code = 400


class StoreError(PowerHubError):
    """Durable store read/write failure"""

    def __init__(self, message: str, domain: str | None = None):
        self.domain = domain
        super().__init__(f"Store Error: {message}")
