from typing import Sequence


class FlowError(Exception):
    pass


class MissingDependencyError(FlowError):
    """The helper tool or the container engine is not available."""


class PreconditionError(FlowError):
    """An operation was invoked before the run it depends on was built."""


class ExternalProcessError(FlowError):
    def __init__(self, command: Sequence[str], returncode: int):
        self.command = list(command)
        self.returncode = returncode
        super().__init__(
            f"command failed with exit code {returncode}: {' '.join(self.command)}"
        )
