"""
Uploader Client - talks to the external file upload service.

The upload service receives the browser upload, virus-scans it, stores it
in S3 and then calls back ``/upload-callback`` with the file location and
the metadata given at initiation.
"""

import logging
from typing import Any, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30


class UploaderError(Exception):
    """The upload service returned an error response."""


def build_callback_url(cdp_environment: str, service_name: str, host: str, port: int) -> str:
    """
    URL the upload service calls when scanning finishes.

    Local development uses the explicit host and port; deployed
    environments use the internal service domain.
    """
    if cdp_environment == 'local':
        return f"http://{host}:{port}/upload-callback"
    return f"https://{service_name}.{cdp_environment}.cdp-int.defra.cloud/upload-callback"


class UploaderClient:
    """
    HTTP client for the upload service.

    Args:
        base_url: Upload service root URL
        callback_url: Where the upload service should post results
        s3_bucket: Destination bucket
        s3_prefix: Default destination key prefix
        mime_types: Accepted MIME types
        max_file_size: Maximum upload size in bytes
    """

    def __init__(
        self,
        base_url: str,
        callback_url: str,
        s3_bucket: str,
        s3_prefix: str,
        mime_types: List[str],
        max_file_size: int,
        timeout: int = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None
    ):
        self.base_url = base_url.rstrip('/')
        self.callback_url = callback_url
        self.s3_bucket = s3_bucket
        self.s3_prefix = s3_prefix
        self.mime_types = mime_types
        self.max_file_size = max_file_size
        self.timeout = timeout
        self.http = session or requests.Session()

    def build_initiate_payload(
        self,
        metadata: Dict[str, Any],
        s3_path: Optional[str] = None,
        redirect: str = '/admin/import'
    ) -> Dict[str, Any]:
        return {
            'redirect': redirect,
            'callback': self.callback_url,
            's3Bucket': self.s3_bucket,
            's3Path': s3_path or self.s3_prefix,
            'metadata': metadata,
            'mimeTypes': self.mime_types,
            'maxFileSize': self.max_file_size,
        }

    def initiate_upload(
        self,
        metadata: Dict[str, Any],
        s3_path: Optional[str] = None,
        redirect: str = '/admin/import'
    ) -> Dict[str, Any]:
        """
        Start an upload session.

        Returns:
            Upload service response (``uploadId``, ``uploadUrl``, ``statusUrl``)

        Raises:
            UploaderError: on a non-2xx response
            requests.RequestException: on transport failure
        """
        payload = self.build_initiate_payload(metadata, s3_path, redirect)
        response = self.http.post(f"{self.base_url}/initiate", json=payload, timeout=self.timeout)
        if not response.ok:
            raise UploaderError(f"Upload initiate failed: {response.text}")

        data = response.json()
        logger.info(f"Upload initiated: {data.get('uploadId')}")
        return data

    def get_upload_status(self, status_url: str) -> Dict[str, Any]:
        """Fetch the upload status document from ``status_url``."""
        response = self.http.get(status_url, timeout=self.timeout)
        if not response.ok:
            raise UploaderError(f"Failed to get upload status: {response.text}")
        return response.json()
