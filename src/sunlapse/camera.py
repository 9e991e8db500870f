"""Webcam image source module for Sunlapse."""

import io
from typing import Optional

import requests
from PIL import Image, UnidentifiedImageError

from sunlapse.config import CaptureConfig
from sunlapse.logger import get_logger, with_fields

logger = get_logger(__name__)


class CameraError(Exception):
    """Base exception for camera-related errors."""

    pass


class CaptureError(CameraError):
    """Exception raised when a single image capture fails."""

    pass


class WebcamSource:
    """Fetches still images from an HTTP webcam endpoint.

    One request per call and no retries: a failed capture is reported to the
    caller, which skips the tick.
    """

    def __init__(
        self,
        config: CaptureConfig,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the source.

        Args:
            config: Capture configuration (endpoint, timeout, verification).
            session: HTTP session shared for the process lifetime.
        """
        self.config = config
        self.endpoint = config.endpoint
        self.session = session if session is not None else requests.Session()

    def fetch(self) -> bytes:
        """Request one image from the endpoint.

        Returns:
            Raw image bytes.

        Raises:
            CaptureError: On transport failure, timeout, non-200 status, or
                (with verify_images) a payload that is not an image.
        """
        log = with_fields(logger, url=self.endpoint)

        try:
            response = self.session.get(self.endpoint, timeout=self.config.timeout_s)
        except requests.exceptions.Timeout:
            raise CaptureError(f"Request timed out after {self.config.timeout_s}s")
        except requests.exceptions.RequestException as e:
            raise CaptureError(f"Request failed: {e}") from e

        if response.status_code != 200:
            raise CaptureError(f"Non-200 status code received: {response.status_code}")

        image = response.content
        if not image:
            raise CaptureError("Empty response body")

        if self.config.verify_images:
            self._verify(image)

        log.debug(f"Fetched {len(image)} bytes")
        return image

    @staticmethod
    def _verify(image: bytes) -> None:
        """Check that the payload decodes as an image."""
        try:
            with Image.open(io.BytesIO(image)) as img:
                img.verify()
        except (UnidentifiedImageError, OSError, SyntaxError) as e:
            raise CaptureError(f"Response is not a valid image: {e}") from e

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self.session.close()
