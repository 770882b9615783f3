class CoreError(RuntimeError):
    pass


class NotFoundError(CoreError):
    pass


class NotAuthorizedError(CoreError):
    pass


class InvalidInputError(CoreError):
    """Rejected external input. ``reason`` is a stable machine-readable code."""

    def __init__(self, reason: str, message: str | None = None):
        super().__init__(message or reason)
        self.reason = reason
