"""Control-plane client error hierarchy.

Kept free of botocore types so callers and in-memory doubles can raise and
catch them without importing the SDK.
"""

from __future__ import annotations


class ImageClientError(Exception):
    """Base error for control-plane image calls."""

    def __init__(self, message: str, *, code: str | None = None) -> None:
        self.code = code
        self.message = message
        super().__init__(f"{code}: {message}" if code else message)


class ImageNotFoundError(ImageClientError):
    """The image id is unknown to the control plane (or not visible yet)."""

    def __init__(self, image_id: str, *, code: str = "InvalidAMIID.NotFound") -> None:
        self.image_id = image_id
        super().__init__(f"image {image_id} not found", code=code)
