class PolaroidError(Exception):
    """Base class for polaroid processing failures"""


class NotLoadedError(PolaroidError):
    """An operation needs an image but none has been loaded yet"""

    def __init__(self, message="No image loaded"):
        super().__init__(message)


class BackendError(PolaroidError):
    """The imaging backend failed; carries the backend's own message"""


class DecodeError(BackendError):
    pass


class GeometryError(BackendError):
    pass


class EncodeError(BackendError):
    pass
