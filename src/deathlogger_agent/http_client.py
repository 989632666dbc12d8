"""HTTP client for uploading deaths to the collection server."""

import json
import logging
from pathlib import Path
from typing import Optional

import requests
from requests.exceptions import ConnectionError, RequestException, Timeout

from . import __version__
from .records import DeathRecord

logger = logging.getLogger(__name__)

DEFAULT_SCREENSHOT_NAME = "screenshot.jpg"


class UploadError(Exception):
    """A death could not be delivered; status_code is None for network failures."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class DeathUploader:
    """Sends one death, and optionally its screenshot, as a multipart POST."""

    def __init__(self, api_url: str, api_token: str = "", timeout_secs: float = 30.0,
                 session: Optional[requests.Session] = None):
        """
        Initialize the uploader.

        Args:
            api_url: Full upload endpoint URL
            api_token: Bearer token; no Authorization header when empty
            timeout_secs: HTTP request timeout in seconds
            session: Session to reuse (a new one is created when omitted)
        """
        self.api_url = api_url
        self.api_token = api_token
        self.timeout_secs = timeout_secs
        self.session = session or requests.Session()

        self.session.headers.update({
            'User-Agent': f'DeathLogger-Agent/{__version__}'
        })

    def upload(self, record: DeathRecord, screenshot: Optional[Path] = None) -> None:
        """
        Deliver a death.

        Args:
            record: The death to send as the "death" form field
            screenshot: Image sent as the "screenshot" file part, if any

        Raises:
            UploadError: On network failure or any non-2xx response
            OSError: If the screenshot cannot be read
        """
        # (None, value) makes a plain form field; always sent as multipart
        files = {"death": (None, json.dumps(record.to_payload()))}

        if screenshot is not None:
            screenshot = Path(screenshot)
            file_name = screenshot.name or DEFAULT_SCREENSHOT_NAME
            files["screenshot"] = (file_name, screenshot.read_bytes())

        headers = {}
        if self.api_token:
            headers['Authorization'] = f'Bearer {self.api_token}'

        try:
            logger.debug(f"POST {self.api_url} for {record.identity_key} (screenshot: {screenshot})")
            response = self.session.post(
                self.api_url,
                files=files,
                headers=headers,
                timeout=self.timeout_secs
            )

        except Timeout:
            raise UploadError(f"Request timeout for {self.api_url}")

        except ConnectionError as e:
            raise UploadError(f"Connection error for {self.api_url}: {e}")

        except RequestException as e:
            raise UploadError(f"Request error for {self.api_url}: {e}")

        if not 200 <= response.status_code < 300:
            body = response.text or ""
            raise UploadError(
                f"Upload failed: {response.status_code} - {body}",
                status_code=response.status_code,
                body=body
            )

    def close(self) -> None:
        """Close the HTTP session."""
        self.session.close()
