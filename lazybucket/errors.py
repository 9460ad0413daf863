from __future__ import annotations


class LazyBucketError(Exception):
    pass


class ConfigurationError(LazyBucketError):
    def __init__(self, message: str, hints: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.hints = hints


class GatewayError(LazyBucketError):
    pass


class LocalIOError(LazyBucketError):
    pass


class ClipboardError(LazyBucketError):
    pass
