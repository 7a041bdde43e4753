import pickle

import pytest

from duedate.core.exceptions import (
    BaseDueDateException,
    CannotLoadConfiguration,
    DueDateValueError,
    IntegrationException,
)


class TestExceptions:
    def test_message(self) -> None:
        exc = BaseDueDateException("Something broke")
        assert exc.message == "Something broke"
        assert str(exc) == "Something broke"

    def test_value_error(self) -> None:
        with pytest.raises(ValueError, match="bad value"):
            raise DueDateValueError("bad value")

    def test_integration_exception(self) -> None:
        exc = IntegrationException("Calendar failed", "Check the tenant header")
        assert exc.message == "Calendar failed"
        assert exc.debug_message == "Check the tenant header"

        exc = CannotLoadConfiguration("Missing url")
        assert isinstance(exc, IntegrationException)
        assert exc.debug_message is None

    @pytest.mark.parametrize(
        "exception",
        [
            pytest.param(BaseDueDateException("base"), id="base"),
            pytest.param(DueDateValueError("value"), id="value"),
            pytest.param(IntegrationException("integration", "debug"), id="integration"),
            pytest.param(CannotLoadConfiguration("configuration"), id="configuration"),
        ],
    )
    def test_pickle(self, exception: BaseDueDateException) -> None:
        unpickled = pickle.loads(pickle.dumps(exception))
        assert type(unpickled) is type(exception)
        assert unpickled.args == exception.args
        assert unpickled.__dict__ == exception.__dict__
