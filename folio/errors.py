"""Error taxonomy for manuscript ingestion.

Every failure the pipeline reports to a caller is an ``IngestionError``
subclass. Each class carries the HTTP status the API answers with, so
route handlers never have to translate them one by one.
"""

from __future__ import annotations


class IngestionError(Exception):
    """Base class for failures surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NoSourceProvided(IngestionError):
    status_code = 400

    def __init__(self, message: str = "Provide either 'fileUrl' or 'pastedText'.") -> None:
        super().__init__(message)


class InvalidRequest(IngestionError):
    """A request field has the wrong type."""

    status_code = 400


class DownloadFailure(IngestionError):
    status_code = 502


class ArchiveCorruption(IngestionError):
    status_code = 422


class ParseTimeout(IngestionError):
    status_code = 504


class ExtractionFailure(IngestionError):
    status_code = 500


class PersistenceFailure(IngestionError):
    status_code = 500


class CoverNotFound(IngestionError):
    status_code = 404

    def __init__(self, message: str = "No designated cover resource found in this EPUB manifest.") -> None:
        super().__init__(message)


class BookNotFound(IngestionError):
    status_code = 404
