"""Exception hierarchy for feed, job and catalog failures.

Every exception carries a message fit to show an operator; the engine copies it
verbatim into the job snapshot.
"""


class StockSyncError(Exception):
    """Base class for all stock sync errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# =============================================================================
# Feed errors (terminal for a run)
# =============================================================================


class FeedError(StockSyncError):
    """The feed could not be turned into rows."""


class ConfigError(FeedError):
    """Feed URL or column names are missing or invalid."""


class NetworkError(FeedError):
    """The transport failed before a response arrived."""


class HttpError(FeedError):
    """The feed responded with a non-200 status."""

    def __init__(self, status_code: int):
        super().__init__(f"Failed to fetch CSV. Response code: {status_code}")
        self.status_code = status_code


class EmptyFeedError(FeedError):
    """The feed body is empty."""

    def __init__(self, message: str = "CSV file is empty."):
        super().__init__(message)


class ColumnNotFoundError(FeedError):
    """A configured column is missing from the feed header."""

    def __init__(self, requested: list[str], available_headers: list[str]):
        super().__init__(
            "Could not find required columns. Looking for: "
            + " and ".join(f'"{name}"' for name in requested)
            + ". Found: "
            + ", ".join(f'"{header}"' for header in available_headers)
        )
        self.requested = requested
        self.available_headers = available_headers


class NoDataError(FeedError):
    """The feed parsed but no row carried both columns."""

    def __init__(self, message: str = "No valid data found in CSV."):
        super().__init__(message)


# =============================================================================
# Job errors
# =============================================================================


class JobError(StockSyncError):
    """Job lifecycle violation."""


class AlreadyRunningError(JobError):
    """Another job holds the single-flight slot."""

    def __init__(self, active_job_id: str):
        super().__init__(
            "A sync is already in progress. Please wait for it to complete."
        )
        self.active_job_id = active_job_id


class JobNotFoundError(JobError):
    def __init__(self, job_id: str):
        super().__init__(f"Progress not found for job {job_id}")
        self.job_id = job_id


class JobFinalizedError(JobError):
    def __init__(self, job_id: str, status: str):
        super().__init__(f"Job {job_id} is already {status}")
        self.job_id = job_id
        self.status = status


# =============================================================================
# Catalog errors (per product, never terminal)
# =============================================================================


class CatalogError(StockSyncError):
    """A single product could not be loaded or saved."""
