"""logslim exceptions."""


class LogSlimError(Exception):
    """Base exception."""


class InvalidInputError(LogSlimError):
    """Input is not something the pipeline can segment."""


class InputTooLargeError(LogSlimError):
    """Raw input exceeds the configured size limit."""


class TooManyEventsError(LogSlimError):
    """Segmentation produced more events than the configured limit."""


class PipelineTimeoutError(LogSlimError):
    """The pipeline invocation ran past its deadline."""


class ConfigError(LogSlimError):
    """Configuration error."""


class WorkerError(LogSlimError):
    """Worker pool failure."""


class WorkerTaskError(WorkerError):
    """A task raised inside a worker process."""


class WorkerCrashedError(WorkerError):
    """A worker process died while running the task and retries ran out."""


class WorkerPoolClosedError(WorkerError):
    """The pool was closed before the task could complete."""
