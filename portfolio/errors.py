class PortfolioError(Exception):
    """Base class for failures surfaced to the user as a notification."""

    title = "Error"


class StorageError(PortfolioError):
    title = "Storage Error"


class PortfolioNotFound(StorageError):
    title = "Not Found"


class ImportFormatError(PortfolioError):
    title = "Import Failed"


class AuthError(PortfolioError):
    title = "Sign-In Failed"


class AssistError(PortfolioError):
    title = "AI Error"


class MediaError(PortfolioError):
    title = "Upload Error"


class RenderError(PortfolioError):
    title = "PDF Error"
