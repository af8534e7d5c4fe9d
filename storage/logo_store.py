"""Mirror carnival logos from MySideline into S3."""
import logging
import mimetypes
import os
import time
from typing import Optional
from urllib.parse import urlparse

import boto3
import requests
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)


ALLOWED_EXTENSIONS = ['.jpg', '.jpeg', '.png', '.gif', '.webp', '.svg']

CONTENT_TYPE_EXTENSIONS = {
    'image/jpeg': '.jpg',
    'image/png': '.png',
    'image/gif': '.gif',
    'image/webp': '.webp',
    'image/svg+xml': '.svg',
}


class LogoDownloadError(Exception):
    """A logo could not be downloaded or is not an acceptable image."""


class LogoStore:
    """Downloads logos over HTTP and stores them in an S3 bucket."""

    MAX_FILE_SIZE_BYTES = 5 * 1024 * 1024
    MAX_RETRIES = 3
    CHUNK_SIZE_BYTES = 64 * 1024

    def __init__(self, bucket: str, timeout: int = 10, s3_client=None):
        """
        Initialize the logo store.

        Args:
            bucket: Destination S3 bucket
            timeout: HTTP request timeout in seconds (default: 10)
            s3_client: Optional boto3 S3 client
        """
        self.bucket = bucket
        self.timeout = timeout
        self.s3 = s3_client or boto3.client('s3')

    def mirror_logo(self, event_id: str, logo_url: str) -> Optional[str]:
        """
        Copy one carnival logo into the bucket.

        Args:
            event_id: Carnival id used in the object key
            logo_url: External http(s) URL of the logo

        Returns:
            Public URL of the stored logo, or None if it could not be mirrored
        """
        parsed = urlparse(logo_url or '')
        if parsed.scheme not in ('http', 'https'):
            logger.warning(f"Not mirroring logo with unsupported URL: {logo_url!r}")
            return None

        try:
            content, content_type = self._download(logo_url)
        except LogoDownloadError as e:
            logger.warning(f"Failed to download logo for carnival {event_id}: {e}")
            return None

        extension = self._extension(logo_url, content_type)
        key = f"carnivals/{event_id}/logo{extension}"

        try:
            self.s3.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=content,
                ContentType=content_type or mimetypes.types_map.get(extension, 'application/octet-stream'),
            )
        except ClientError as e:
            logger.error(f"Error storing logo for carnival {event_id} in {self.bucket}: {e}")
            return None

        public_url = f"https://{self.bucket}.s3.amazonaws.com/{key}"
        logger.info(f"Mirrored logo for carnival {event_id} to {public_url}")
        return public_url

    def _download(self, logo_url: str) -> tuple:
        """
        Fetch logo bytes with retry logic.

        Returns:
            Tuple of (content, content type)

        Raises:
            LogoDownloadError: If all retry attempts fail or the file is unacceptable
        """
        base_delay = 1  # seconds

        for attempt in range(self.MAX_RETRIES):
            try:
                response = requests.get(logo_url, timeout=self.timeout, stream=True)
                response.raise_for_status()
                break
            except requests.RequestException as e:
                if attempt < self.MAX_RETRIES - 1:
                    delay = base_delay * (2 ** attempt)
                    logger.warning(
                        f"Logo request failed (attempt {attempt + 1}/{self.MAX_RETRIES}): {e}. "
                        f"Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                else:
                    raise LogoDownloadError(str(e)) from e

        content_type = response.headers.get('Content-Type', '').split(';')[0].strip().lower()
        extension = os.path.splitext(urlparse(logo_url).path)[1].lower()
        if not content_type.startswith('image/') and extension not in ALLOWED_EXTENSIONS:
            response.close()
            raise LogoDownloadError(f"not an image (Content-Type '{content_type}')")

        content = self._read_limited(response)
        if not content:
            raise LogoDownloadError('empty response')

        return content, content_type

    def _read_limited(self, response: requests.Response) -> bytes:
        """Read the body in chunks, stopping as soon as it passes the size limit."""
        declared = response.headers.get('Content-Length')
        if declared and declared.isdigit() and int(declared) > self.MAX_FILE_SIZE_BYTES:
            response.close()
            raise LogoDownloadError(f"{declared} bytes exceeds the size limit")

        chunks = []
        size = 0
        try:
            for chunk in response.iter_content(chunk_size=self.CHUNK_SIZE_BYTES):
                size += len(chunk)
                if size > self.MAX_FILE_SIZE_BYTES:
                    raise LogoDownloadError(f"more than {self.MAX_FILE_SIZE_BYTES} bytes exceeds the size limit")
                chunks.append(chunk)
        except requests.RequestException as e:
            raise LogoDownloadError(f"download interrupted: {e}") from e
        finally:
            response.close()
        return b''.join(chunks)

    def _extension(self, logo_url: str, content_type: str) -> str:
        extension = os.path.splitext(urlparse(logo_url).path)[1].lower()
        if extension in ALLOWED_EXTENSIONS:
            return extension
        return CONTENT_TYPE_EXTENSIONS.get(content_type, '.png')
