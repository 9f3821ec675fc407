class TrackerError(Exception):
    """Base class for every error raised by this package."""


class ConfigError(TrackerError):
    pass


class RpcError(TrackerError):
    def __init__(self, message: str, method: str = "", code=None):
        super().__init__(message)
        self.method = method
        self.code = code


class TransientRpcError(RpcError):
    """Rate limits, timeouts, resets: expected to clear up on retry."""


class FatalRpcError(RpcError):
    """Permanent failure for this unit of work. Never retried."""


class RetriesExhausted(FatalRpcError):
    def __init__(self, message: str, method: str = "", attempts: int = 0):
        super().__init__(message, method=method)
        self.attempts = attempts


class StoreError(TrackerError):
    pass


class ScanCancelled(TrackerError):
    pass
