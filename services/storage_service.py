"""
Storage Service - temporary spreadsheet files and S3 downloads.

Uploaded and S3-downloaded workbooks live in a temp directory for the
duration of one import and are removed afterwards by the caller.
"""

import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, Optional

import boto3
from botocore.config import Config

logger = logging.getLogger(__name__)

DEFAULT_TEMP_DIR = os.path.join(tempfile.gettempdir(), 'excel_uploads')
LOCALSTACK_ENDPOINT = 'http://localhost:4566'
DOWNLOAD_CHUNK_SIZE = 64 * 1024


def create_s3_client(region: str, cdp_environment: str):
    """
    Create an S3 client.

    In the ``local`` environment the client talks to LocalStack with
    path-style addressing.
    """
    if cdp_environment == 'local':
        return boto3.client(
            's3',
            region_name=region,
            endpoint_url=LOCALSTACK_ENDPOINT,
            config=Config(s3={'addressing_style': 'path'})
        )
    return boto3.client('s3', region_name=region)


class StorageService:
    """
    Temp-file management for spreadsheet imports.

    Args:
        temp_dir: Directory for temporary workbook files
        region: AWS region for S3 downloads
        cdp_environment: Deployment environment name (``local`` uses LocalStack)
        s3_client: Optional pre-built S3 client
    """

    def __init__(
        self,
        temp_dir: str = DEFAULT_TEMP_DIR,
        region: str = 'eu-west-2',
        cdp_environment: str = 'local',
        s3_client=None
    ):
        self.temp_dir = temp_dir
        self.region = region
        self.cdp_environment = cdp_environment
        self._s3_client = s3_client
        Path(self.temp_dir).mkdir(parents=True, exist_ok=True)

    @property
    def s3_client(self):
        if self._s3_client is None:
            self._s3_client = create_s3_client(self.region, self.cdp_environment)
        return self._s3_client

    def _temp_path(self, prefix: str, suffix: str) -> str:
        timestamp = datetime.utcnow().strftime('%Y%m%d%H%M%S%f')
        fd, path = tempfile.mkstemp(prefix=f"{prefix}-{timestamp}-", suffix=suffix, dir=self.temp_dir)
        os.close(fd)
        return path

    def save_upload(self, fileobj: BinaryIO, filename: str) -> str:
        """
        Copy an uploaded file stream into a new temp file.

        The temp file is removed again if the copy fails.

        Returns:
            Path to the temp file
        """
        suffix = Path(filename).suffix.lower() or '.xlsx'
        path = self._temp_path('upload', suffix)
        try:
            with open(path, 'wb') as f:
                while True:
                    chunk = fileobj.read(DOWNLOAD_CHUNK_SIZE)
                    if not chunk:
                        break
                    f.write(chunk)
        except Exception:
            self.cleanup_temp_file(path)
            raise
        logger.info(f"Saved upload {filename} to {path}")
        return path

    def download_from_s3(self, bucket: str, key: str) -> str:
        """
        Download an S3 object to a new temp file.

        The response body is read in chunks into one buffer and written out
        once complete.

        Returns:
            Path to the downloaded file
        """
        logger.info(f"Downloading s3://{bucket}/{key} (region {self.region})")
        response = self.s3_client.get_object(Bucket=bucket, Key=key)
        body = response['Body']

        buffer = bytearray()
        for chunk in iter(lambda: body.read(DOWNLOAD_CHUNK_SIZE), b''):
            buffer.extend(chunk)

        suffix = Path(key).suffix.lower() or '.xlsx'
        path = self._temp_path('s3-download', suffix)
        with open(path, 'wb') as f:
            f.write(bytes(buffer))

        logger.info(f"Downloaded {len(buffer)} bytes from S3 to {path}")
        return path

    def cleanup_temp_file(self, file_path: Optional[str]) -> bool:
        """
        Remove a temp file. Failures are logged, never raised.

        Returns:
            True if the file was removed
        """
        return cleanup_temp_file(file_path)

    def get_file_size_mb(self, file_path: str) -> float:
        path = Path(file_path)
        if not path.exists():
            return 0.0
        return round(path.stat().st_size / (1024 * 1024), 2)


def cleanup_temp_file(file_path: Optional[str]) -> bool:
    """Remove ``file_path`` if it exists; log and swallow OS errors."""
    if not file_path:
        return False
    try:
        os.remove(file_path)
        logger.info(f"Temporary file cleaned up: {file_path}")
        return True
    except FileNotFoundError:
        logger.debug(f"Temporary file already removed: {file_path}")
        return False
    except OSError as e:
        logger.warning(f"Failed to clean up temp file {file_path}: {e}")
        return False
