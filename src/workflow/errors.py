"""Error taxonomy for the diff workflow.

Fatal errors abort the run (CLI exit code 1). Recoverable conditions are
never raised past their stage; they are logged and recorded on the
RunReport instead.
"""


class WorkflowError(Exception):
    """Base exception for fatal workflow errors."""

    pass


class MissingInputError(WorkflowError):
    """A required input (e.g. the new build id) was not supplied."""

    pass


class ResolutionError(WorkflowError):
    """The previous build could not be inferred from the build listing."""

    pass


class AcquisitionError(WorkflowError):
    """No firmware image was found after the download attempt."""

    pass


class KernelImageError(WorkflowError):
    """Kext changes exist but a kernelcache could not be located."""

    pass


class ToolNotFoundError(WorkflowError):
    """A required external tool is not installed."""

    pass


class ToolError(Exception):
    """An external tool invocation failed.

    Not a WorkflowError: callers decide whether a failed invocation is
    fatal for their stage.
    """

    def __init__(self, message: str, returncode: int | None = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class DiffError(WorkflowError):
    """The diff could not be computed or restored."""

    pass
