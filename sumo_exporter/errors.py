class SumoExportError(Exception):
    """Base error for everything the exporter raises."""


class ConfigError(SumoExportError):
    """Invalid or missing configuration."""


class TransportError(SumoExportError):
    """The HTTP request could not be executed at all."""


class SearchJobProtocolError(SumoExportError):
    """The search job API answered with an unexpected status code."""

    def __init__(self, message, status=None, reason=None):
        super().__init__(message)
        self.status = status
        self.reason = reason


class SearchJobDecodeError(SumoExportError):
    """A response body did not have the expected shape."""


class SearchJobStateError(SumoExportError):
    """An operation was called in the wrong lifecycle phase."""


class SearchJobFailedError(SumoExportError):
    """The remote job ended as CANCELLED or FAILED."""


class IncompleteResultsError(SumoExportError):
    """The job finished gathering but returned fewer messages than advertised."""


class ArtifactError(SumoExportError):
    """Local CSV file could not be created, written or removed."""


class TransferError(SumoExportError):
    """Upload of the exported file to the object store failed."""
