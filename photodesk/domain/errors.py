class PhotoDeskError(Exception):
    """
    Base class for every error raised by the editing pipeline.
    """


class InputValidationError(PhotoDeskError, ValueError):
    """
    Rejected user input (sizes, units, presets, malformed images, empty batches).
    Raised before any buffer is touched.
    """


class RemoteServiceError(PhotoDeskError, RuntimeError):
    """
    The remote image collaborator failed or returned no image.
    """

    def __init__(self, message: str, operation: str = "") -> None:
        super().__init__(message)
        self.operation = operation


class GeometryError(PhotoDeskError, ValueError):
    """
    A geometric operation cannot be performed (zero-area crop, empty photo).
    """


class PrintFitError(GeometryError):
    """
    A stamp is larger than the paper it should be tiled on.
    """

    def __init__(self, message: str, cols: int = 0, rows: int = 0) -> None:
        super().__init__(message)
        self.cols = cols
        self.rows = rows
