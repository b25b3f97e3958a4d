import base64
import binascii
import re

import requests
from loguru import logger

from portfolio.errors import MediaError

DATA_URL_RE = re.compile(r"^data:(?P<mimetype>[\w.+-]+/[\w.+-]+);base64,(?P<payload>.+)$", re.DOTALL)

EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/gif": "gif",
    "image/webp": "webp",
}


def decode_data_url(data_url: str) -> tuple:
    """Split an inline `data:image/...;base64,...` URL into (bytes, mimetype)."""
    match = DATA_URL_RE.match(data_url or "")
    if not match:
        raise MediaError("Profile picture is not an inline image.")
    try:
        data = base64.b64decode(match.group("payload"), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise MediaError("Profile picture data is corrupt.") from exc
    return data, match.group("mimetype")


class CloudinaryUploader:
    """Unsigned uploads to Cloudinary; returns the hosted HTTPS URL."""

    def __init__(self, cloud_name: str = None, upload_preset: str = None, timeout: float = 30):
        self.cloud_name = cloud_name
        self.upload_preset = upload_preset
        self.timeout = timeout

    @property
    def upload_url(self) -> str:
        return f"https://api.cloudinary.com/v1_1/{self.cloud_name}/image/upload"

    def upload_image(self, data: bytes, filename: str = "profile.png") -> str:
        if not data:
            raise MediaError("No file provided for upload.")
        if not self.cloud_name or not self.upload_preset:
            raise MediaError(
                "Image hosting is not configured. Set CLOUDINARY_CLOUD_NAME and CLOUDINARY_UPLOAD_PRESET."
            )

        try:
            response = requests.post(
                self.upload_url,
                files={"file": (filename, data)},
                data={"upload_preset": self.upload_preset},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error("Image upload failed: {}", exc)
            raise MediaError(f"Image upload failed: {exc}") from exc

        if not response.ok:
            try:
                message = response.json()["error"]["message"]
            except (ValueError, KeyError, TypeError):
                message = f"HTTP {response.status_code}"
            logger.error("Cloudinary rejected upload: {}", message)
            raise MediaError(f"Cloudinary upload failed: {message}")

        try:
            url = response.json()["secure_url"]
        except (ValueError, KeyError, TypeError) as exc:
            raise MediaError("Cloudinary response did not include an image URL.") from exc
        logger.info("Uploaded profile picture ({} bytes)", len(data))
        return url

    def upload_data_url(self, data_url: str) -> str:
        data, mimetype = decode_data_url(data_url)
        return self.upload_image(data, filename=f"profile.{EXTENSIONS.get(mimetype, 'img')}")
