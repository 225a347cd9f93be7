import logging
import os
from typing import BinaryIO, Optional

import cloudinary
import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError
from fastapi import Request

from settings import API_KEY, API_SECRET, CLOUD_NAME

logger = logging.getLogger(__name__)

ALLOWED_FORMATS = ("jpg", "png", "jpeg")
UPLOAD_FOLDER = "products"


class UnsupportedImageFormat(ValueError):
    pass


class MediaUploadError(Exception):
    pass


def check_image_format(filename: Optional[str]) -> str:
    ext = os.path.splitext(filename or "")[1].lstrip(".").lower()
    if ext not in ALLOWED_FORMATS:
        raise UnsupportedImageFormat(
            f"Unsupported image format; allowed: {', '.join(ALLOWED_FORMATS)}"
        )
    return ext


class MediaHost:
    """Stores product images on Cloudinary and hands back their public URL."""

    def __init__(self, cloud_name: Optional[str], api_key: Optional[str], api_secret: Optional[str]):
        cloudinary.config(
            cloud_name=cloud_name,
            api_key=api_key,
            api_secret=api_secret,
            secure=True,
        )

    @classmethod
    def from_settings(cls) -> "MediaHost":
        return cls(CLOUD_NAME, API_KEY, API_SECRET)

    def upload_image(self, fileobj: BinaryIO, filename: Optional[str]) -> str:
        check_image_format(filename)
        try:
            result = cloudinary.uploader.upload(
                fileobj,
                folder=UPLOAD_FOLDER,
                allowed_formats=list(ALLOWED_FORMATS),
                resource_type="image",
            )
        except CloudinaryError as e:
            raise MediaUploadError(str(e)) from e
        url = result.get("secure_url") or result.get("url")
        if not url:
            raise MediaUploadError("Media host returned no URL")
        logger.info(f"Uploaded image {filename} to {url}")
        return url


def get_media_host(request: Request) -> MediaHost:
    return request.app.state.media
