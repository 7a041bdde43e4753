from typing import Any


class BaseDueDateException(Exception):
    """Base class for all Exceptions in the due date engine."""

    def __init__(self, message: str | None = None):
        """Initializes a new instance of BaseDueDateException class

        :param message: String containing description of the exception that occurred
        """
        super().__init__(message)
        self.message = message

    def __getstate__(self) -> dict[str, Any]:
        return {"dict": self.__dict__, "args": self.args}

    def __setstate__(self, state: dict[str, Any] | None) -> None:
        # state is always a dict from __getstate__, but the signature must
        # accept None to match BaseException.__setstate__
        assert state is not None
        self.__dict__.update(state["dict"])
        self.args = state["args"]

    def __reduce__(self) -> tuple[Any, ...]:
        state = self.__getstate__()
        return self.__class__.__new__, (self.__class__,), state


class DueDateValueError(BaseDueDateException, ValueError): ...


class IntegrationException(BaseDueDateException):
    """An exception that happens when the engine's connection to a
    third-party service (for example the calendar service) is broken.

    This may be because communication failed
    (RemoteIntegrationException), or because local configuration is
    missing or obviously wrong (CannotLoadConfiguration).
    """

    def __init__(self, message: str | None, debug_message: str | None = None) -> None:
        """Constructor.

        :param message: The normal message passed to any Exception
        constructor.

        :param debug_message: An extra human-readable explanation of the
        problem, shown to staff but not to patrons. This may include
        instructions on what bits of the integration configuration might need
        to be changed.
        """
        super().__init__(message)
        self.debug_message = debug_message


class CannotLoadConfiguration(IntegrationException):
    """The current configuration of an external integration, or of the
    engine as a whole, is in an incomplete or inconsistent state.

    This is more specific than a base IntegrationException because it
    assumes the problem is evident just by looking at the current
    configuration, with no need to actually talk to the foreign
    server.
    """
