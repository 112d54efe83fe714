class QueueServiceError(Exception):
    """Base class for construction errors caused by invalid input."""


class ConfigurationConflict(QueueServiceError):
    """Two mutually exclusive inputs were both supplied."""


class InvalidScalingRange(QueueServiceError, ValueError):
    """Scaling bounds or knobs that cannot describe a valid scalable target."""


class MissingRunnableUnit(QueueServiceError):
    """A service was requested without a task definition to run."""


class MissingIdentity(QueueServiceError):
    """The task definition carries no role that permissions can be granted to."""


class InvalidResourceHints(QueueServiceError, ValueError):
    """Container resources the platform would reject for the task definition."""
