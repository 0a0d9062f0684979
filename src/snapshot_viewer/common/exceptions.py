class SnapshotViewerError(Exception):
    """Base class for errors raised by the snapshot viewer."""


class PreviousRecordFetchError(SnapshotViewerError):
    """Raised when the previous record of a snapshot can't be fetched."""

    def __init__(self, record_id: int, reason: str):
        super().__init__(
            f"Failed to fetch previous record for {record_id}: {reason}"
        )
        self.record_id = record_id
        self.reason = reason
