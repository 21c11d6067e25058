"""Error taxonomy shared by the container, converter, watcher and session layers"""


class WordMDError(Exception):
    """Base class for all wordmd failures."""


class ContainerError(WordMDError):
    """Container unreadable/unwritable or missing a required native part."""


class EditorLaunchError(WordMDError):
    """Editor executable missing or the process could not be spawned."""


class WatcherError(WordMDError):
    """The directory observation mechanism failed; live sync is degraded."""


class CleanupError(WordMDError):
    """Staging directory removal failed. Logged only."""


class ConversionWarning(UserWarning):
    """An unsupported markdown construct was skipped during conversion."""
