"""Control-plane image clients."""

from .ec2_client import Ec2ImageClient, descriptor_from_api
from .errors import ImageClientError, ImageNotFoundError

__all__ = [
    "Ec2ImageClient",
    "ImageClientError",
    "ImageNotFoundError",
    "descriptor_from_api",
]
