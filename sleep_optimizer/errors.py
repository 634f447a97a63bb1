class SleepOptimizerError(Exception):
    """Base class for every failure the control loop knows how to absorb."""


class SignalUnavailableError(SleepOptimizerError):
    """Vitals or environment could not be sampled for this tick."""


class ClassificationError(SleepOptimizerError):
    """Inference failed or produced a label that is not a concrete stage."""


class PolicyError(SleepOptimizerError):
    """The decision policy failed or returned a malformed action."""


class ActuatorDispatchError(SleepOptimizerError):
    def __init__(self, domain: str, command: str, cause: BaseException) -> None:
        super().__init__(f"{domain}.{command} failed: {cause}")
        self.domain = domain
        self.command = command
        self.cause = cause


class HistoryStoreError(SleepOptimizerError):
    """Saving or loading quick actions failed."""
