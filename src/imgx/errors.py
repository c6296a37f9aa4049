"""
Exception taxonomy shared by the stages, the pipeline and the I/O layer.
"""


class ImgxError(Exception):
    """Base class for every error the library raises on purpose."""


class InvalidInput(ImgxError):
    """Rejected upload: bad MIME type, oversized file or malformed base64."""


class DecodeError(ImgxError):
    """Bytes do not parse as an image."""


class EncodeError(ImgxError):
    """A stage could not produce output (zero-size canvas, unsupported format...)."""


class InvalidParameter(ImgxError, ValueError):
    """A numeric option is non-finite or outside its documented domain."""


class RecentsError(ImgxError):
    """The recent-images store could not be read or written."""
