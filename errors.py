"""Error taxonomy shared by the scanner, the store and the controller."""


class LaunchmatError(Exception):
    """Base error for failures surfaced to the presentation layer."""


class ExternalActionError(LaunchmatError):
    """An external `open` invocation for an application failed."""

    action = "open"

    def __init__(self, app_name: str, cause: BaseException) -> None:
        self.app_name = app_name
        self.cause = cause
        super().__init__(f"Failed to {self.action} {app_name}: {cause}")


class LaunchFailure(ExternalActionError):
    action = "launch"


class RevealFailure(ExternalActionError):
    action = "show in Finder"


class InfoFailure(ExternalActionError):
    action = "get info for"


class StorageWriteFailure(LaunchmatError):
    """A persisted record could not be written or removed."""

    def __init__(self, key: str, cause: BaseException) -> None:
        self.key = key
        self.cause = cause
        super().__init__(f"Could not write {key}: {cause}")


class ImportFormatError(LaunchmatError):
    """An import snapshot is missing, unparsable or malformed."""


class ValidationError(LaunchmatError):
    """Invalid input for a folder operation."""


class FolderNotFoundError(ValidationError):
    def __init__(self, folder_id: str) -> None:
        self.folder_id = folder_id
        super().__init__(f"Folder not found: {folder_id}")


class CatchAllFolderError(ValidationError):
    """The catch-all folder cannot be deleted."""
