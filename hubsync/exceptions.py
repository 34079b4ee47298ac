"""
hubsync/exceptions.py -- Error taxonomy for the content synchronizer.

Every failure is scoped to one item, one entity, or one sync attempt.
Nothing here is meant to take the process down.
"""


class CatalogSyncError(Exception):
    """Base class for all synchronizer errors."""


class ItemValidationError(CatalogSyncError):
    """An import item failed validation.

    Parameters
    ----------
    messages : list[str]
        Human-readable descriptions of each problem.
    """

    def __init__(self, messages: list[str]):
        self.messages = list(messages)
        super().__init__("; ".join(self.messages) or "invalid item")


class LinkageError(CatalogSyncError):
    """An entity references a parent that is not present in the tree."""

    def __init__(self, child: tuple[str, str], parent: tuple[str, str]):
        self.child = child
        self.parent = parent
        super().__init__(
            f"{child[0]} '{child[1]}' references missing {parent[0]} '{parent[1]}'"
        )


class TransportError(CatalogSyncError):
    """The remote store could not be reached or rejected the request."""

    def __init__(self, message: str, status: int | None = None):
        self.status = status
        super().__init__(message)


class MalformedRecordError(CatalogSyncError):
    """A remote record could not be normalized into a catalog entity."""


# Live-path name for the same failure.
MalformedNotification = MalformedRecordError


class TreeInconsistencyError(CatalogSyncError):
    """The tree's graph and flat collections disagree; rebuild required."""


class SyncCancelled(CatalogSyncError):
    """The caller abandoned a rebuild or reconcile pass."""
