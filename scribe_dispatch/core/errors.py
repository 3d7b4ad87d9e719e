"""
Error taxonomy for transcription adapters.

Every error may carry the captured output of the engine or installer process
(``output``), which is the main diagnostic signal for an opaque external engine.
"""


class AdapterError(Exception):
    """Base class for all adapter failures."""

    retryable: bool = False

    def __init__(self, message: str, output: str | None = None):
        super().__init__(message)
        self.message = message
        self.output = output

    def __str__(self) -> str:
        if self.output:
            return f"{self.message}\n--- process output ---\n{self.output}"
        return self.message


class UnsupportedPlatform(AdapterError):
    """The adapter cannot run on this host OS. Pick another adapter."""


class ProvisioningFailed(AdapterError):
    """Installing the engine environment failed (network, uv, disk...)."""

    retryable = True


class InvalidInput(AdapterError):
    """Audio input or processing context is unusable."""


class ParameterError(AdapterError):
    """Request parameters do not match the adapter's schema."""

    def __init__(self, name: str, message: str):
        super().__init__(message)
        self.name = name


class MissingParameter(ParameterError):
    pass


class InvalidParameter(ParameterError):
    pass


class ExecutionCancelled(AdapterError):
    """The caller cancelled the job; the child process was killed."""

    retryable = True


class ExecutionTimeout(AdapterError):
    """The job exceeded its deadline; the child process was killed."""

    retryable = True


class EngineExecutionFailed(AdapterError):
    """The engine exited non-zero or produced no output artifact."""

    retryable = True

    def __init__(self, message: str, output: str | None = None, returncode: int | None = None):
        super().__init__(message, output)
        self.returncode = returncode


class OutputParseError(AdapterError):
    """The engine wrote an artifact this adapter cannot interpret."""

    def __init__(self, message: str, path: str):
        super().__init__(f"{message} (artifact: {path})")
        self.path = path
