"""EC2 image client backed by boto3.

Implements the ImageClient protocol for one region. boto3 calls are
blocking, so each one runs in a worker thread. botocore errors are mapped
onto the ImageClientError hierarchy; the ``InvalidAMIID.*`` family becomes
ImageNotFoundError so the waiter can ride out eventual consistency.
"""

from __future__ import annotations

import asyncio
import logging
from types import MappingProxyType
from typing import Any, Callable

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..models import ImageDescriptor, ImageRequest
from .errors import ImageClientError, ImageNotFoundError

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = frozenset({"InvalidAMIID.NotFound", "InvalidAMIID.Unavailable"})


def descriptor_from_api(image: dict[str, Any], region: str | None = None) -> ImageDescriptor:
    """Build an ImageDescriptor from one ``DescribeImages`` entry."""
    tags = {tag["Key"]: tag.get("Value", "") for tag in image.get("Tags") or ()}
    return ImageDescriptor(
        image_id=image["ImageId"],
        state=image.get("State", "unknown"),
        name=image.get("Name", ""),
        virtualization_type=image.get("VirtualizationType"),
        region=region,
        tags=MappingProxyType(tags),
    )


class Ec2ImageClient:
    """Create, describe and deregister AMIs in a single region."""

    def __init__(self, *, region: str, ec2_client: Any | None = None) -> None:
        if not region:
            raise ValueError("region is required")
        self._region = region
        self._ec2 = ec2_client or boto3.client("ec2", region_name=region)

    @property
    def region(self) -> str:
        return self._region

    async def create_image(self, request: ImageRequest, instance_id: str) -> str:
        """Request an image of ``instance_id`` and return the new image id."""
        params: dict[str, Any] = {
            "InstanceId": instance_id,
            "Name": request.name,
        }
        if request.block_device_mappings:
            params["BlockDeviceMappings"] = [dict(m) for m in request.block_device_mappings]
        if request.description:
            params["Description"] = request.description

        resp = await self._call("CreateImage", self._ec2.create_image, **params)
        image_id = resp["ImageId"]
        logger.info(
            "Image creation requested: image_id=%s instance_id=%s",
            image_id,
            instance_id,
            extra={"image_id": image_id, "region": self._region},
        )
        return image_id

    async def describe_image(self, image_id: str) -> ImageDescriptor:
        """Return the descriptor of ``image_id``.

        Raises ImageNotFoundError if the image is not (yet) visible.
        """
        resp = await self._call(
            "DescribeImages",
            self._ec2.describe_images,
            image_id=image_id,
            ImageIds=[image_id],
        )
        images = resp.get("Images") or []
        if not images:
            raise ImageNotFoundError(image_id)
        return descriptor_from_api(images[0], self._region)

    async def deregister_image(self, image_id: str) -> None:
        await self._call(
            "DeregisterImage",
            self._ec2.deregister_image,
            image_id=image_id,
            ImageId=image_id,
        )
        logger.info(
            "Image deregistered: image_id=%s",
            image_id,
            extra={"image_id": image_id, "region": self._region},
        )

    async def _call(
        self,
        operation: str,
        func: Callable[..., dict[str, Any]],
        *,
        image_id: str | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        try:
            return await asyncio.to_thread(func, **kwargs)
        except ClientError as exc:
            error = exc.response.get("Error", {})
            code = error.get("Code")
            if code in _NOT_FOUND_CODES and image_id is not None:
                raise ImageNotFoundError(image_id, code=code) from exc
            raise ImageClientError(
                f"{operation} failed: {error.get('Message', exc)}",
                code=code,
            ) from exc
        except BotoCoreError as exc:
            raise ImageClientError(f"{operation} failed: {exc}") from exc
