"""Exception taxonomy.

Configuration problems are raised before a batch is scheduled. Everything raised while a
transfer task runs is caught by the scheduler and becomes that task's FAILED outcome.
Skips and cancellation are outcome statuses, not exceptions.
"""


class SelfSendError(Exception):
    """Base class for every error raised by selfsend."""


class InvalidConfiguration(SelfSendError):
    """Batch rejected before any task starts (no credentials, unknown network, ...)."""


class NetworkError(SelfSendError):
    """A remote read, submit or confirmation call failed."""

    def __init__(self, message: str, *, transient: bool = False) -> None:
        super().__init__(message)
        self.transient = transient

    @property
    def kind(self) -> str:
        return "transient" if self.transient else "permanent"

    def __str__(self) -> str:
        return f"{self.kind} network error: {self.args[0]}"


class BuildError(SelfSendError):
    """Local encoding or signing failure."""
