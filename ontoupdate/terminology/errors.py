"""Failures raised while loading and reconciling terminology resources."""


class OntoUpdateError(Exception):
    """Base class for ontology update failures."""


class RemoteFetchError(OntoUpdateError):
    """The validator pack could not be retrieved. Fatal to the run."""

    def __init__(self, message, status_code=None, reason=None):
        super().__init__(message)
        self.status_code = status_code
        self.reason = reason


class ArchiveParseError(OntoUpdateError):
    """The archive, or a single entry of it, could not be read."""

    def __init__(self, message, entry_name=None):
        super().__init__(message)
        self.entry_name = entry_name


class RemoteQueryError(OntoUpdateError):
    """A search against the terminology server failed."""


class RemoteCreateError(OntoUpdateError):
    """A conditional create against the terminology server failed."""


class BaselineLoadWarning(UserWarning):
    """A packaged reference dataset was missing or unreadable."""
