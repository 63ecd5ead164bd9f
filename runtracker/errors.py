from __future__ import annotations


class RunTrackerError(Exception):
    """Base class for errors raised by the import and enrichment pipeline."""


class DuplicateFileError(RunTrackerError):
    def __init__(self, uuid: str):
        super().__init__(f"Attempted to import a file already in the database, UUID: {uuid}")
        self.uuid = uuid


class FileIdentityMissingError(RunTrackerError):
    def __init__(self, uuid: str):
        super().__init__(f"FIT File with UUID='{uuid}' did not have a file_id message")
        self.uuid = uuid


class FileDoesNotExistError(RunTrackerError):
    def __init__(self, reference: str):
        super().__init__(f"FIT File with UUID='{reference}' does not exist")
        self.reference = reference


class AmbiguousFileReferenceError(RunTrackerError):
    def __init__(self, reference: str, matches: list[str]):
        super().__init__(
            f"UUID prefix '{reference}' matches more than one file: {', '.join(matches)}"
        )
        self.reference = reference
        self.matches = matches


class ServiceRequestError(RunTrackerError):
    """An external elevation or map provider answered with an error."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"Request failed with code: {status_code} - {message}")
        self.status_code = status_code
        self.message = message


class PolylineEncodingError(RunTrackerError):
    pass


class InvalidConfigurationValue(RunTrackerError):
    pass


class UnknownServiceHandler(RunTrackerError):
    pass


class EmptyRouteError(RunTrackerError):
    def __init__(self, uuid: str):
        super().__init__(f"FIT File with UUID='{uuid}' has no GPS points to draw")
        self.uuid = uuid
