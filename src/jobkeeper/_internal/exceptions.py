from typing import NoReturn


class BaseJobKeeperError(Exception):
    pass


class JobNotFoundError(BaseJobKeeperError):
    """Raised when the job record is missing from the store."""

    def __init__(self, key: str) -> None:
        self.key: str = key
        super().__init__(f"Job with key {key!r} was not found in the store.")


class TransitionError(BaseJobKeeperError, ValueError):
    """Raised when an execution outcome is applied to the wrong job."""

    def __init__(self, job_key: str, context_key: str) -> None:
        self.job_key: str = job_key
        self.context_key: str = context_key
        msg = (
            f"Cannot apply outcome of job {context_key!r} "
            f"to job {job_key!r}: keys do not match."
        )
        super().__init__(msg)


class StoreWriteError(BaseJobKeeperError):
    """Raised when the updated job record could not be persisted.

    The transition must be treated as not applied. It is safe to retry.
    """

    def __init__(self, key: str, reason: str) -> None:
        self.key: str = key
        self.reason: str = reason
        super().__init__(f"key: {key}, failed to store job: {reason}")


class SchedulerRemovalError(BaseJobKeeperError):
    """Raised when a finished job could not be removed from the scheduler.

    The store already holds the final state. The job may fire once more.
    """

    def __init__(self, key: str, reason: str) -> None:
        self.key: str = key
        self.reason: str = reason
        super().__init__(
            f"key: {key}, failed to remove job from scheduler: {reason}"
        )


class DuplicateJobError(RuntimeError):
    """Raised when a job is armed with a key that is already in use."""

    def __init__(self, key: str) -> None:
        self.key: str = key
        super().__init__(f"Job with key {key!r} is already scheduled.")


class PayloadNotRegisteredError(BaseJobKeeperError):
    """No payload with this name has been registered."""

    def __init__(self, name: str) -> None:
        self.name: str = name
        super().__init__(f"No payload registered with the name {name!r}.")


class PayloadAlreadyRegisteredError(BaseJobKeeperError):
    """A payload with this name has already been registered."""

    def __init__(self, name: str) -> None:
        msg = f"A payload with the name {name!r} has already been registered."
        super().__init__(msg)


class ApplicationStateError(BaseJobKeeperError):
    """Raised when app is in wrong state for the requested operation."""

    def __init__(
        self,
        *,
        operation: str,
        reason: str,
        solution: str,
    ) -> None:
        self.operation: str = operation
        self.reason: str = reason
        self.solution: str = solution

        msg = (
            f"Cannot perform operation '{operation}'.\n"
            f"  Reason: {reason}\n"
            f"  Resolution: {solution}"
        )
        super().__init__(msg)


def raise_app_not_started_error(operation: str) -> NoReturn:
    raise ApplicationStateError(
        operation=operation,
        reason="The JobKeeper application is not started.",
        solution=(
            "Ensure you are calling this method inside an "
            "'async with keeper:' block or after calling "
            "'await keeper.startup()'."
        ),
    )


def raise_app_already_started_error(operation: str) -> NoReturn:
    raise ApplicationStateError(
        operation=operation,
        reason="The JobKeeper app's already running and payloads are frozen.",
        solution=(
            "Payloads must be registered BEFORE the application starts. "
            "Move this call outside/before the 'async with keeper:' block."
        ),
    )
