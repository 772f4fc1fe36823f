from __future__ import annotations



class TangleplayError(Exception):
    """Base for all tangleplay exceptions."""


class ConfigError(TangleplayError):
    """Configuration related issues."""


class TaskError(TangleplayError):
    """Task scheduling/execution issues."""


class NetworkError(TangleplayError):
    """Network/HTTP layer issues."""


class GatewayError(TangleplayError):
    """Streaming gateway (metadata lookup) issues."""


class WizardError(TangleplayError):
    """Selection wizard used out of order."""
