"""S3 client for the attachment bucket on the backend's S3-compatible storage endpoint."""
import base64
import hashlib

import boto3
from botocore.config import Config as BotoConfig
from loguru import logger

from tasknest.exceptions import ConfigurationError
from tasknest.utils.settings import Settings, get_settings

CACHE_CONTROL = 'max-age=3600'


def get_md5(data: bytes) -> str:
    """Calculate base64-encoded MD5 hash of data."""
    return base64.b64encode(hashlib.md5(data).digest()).decode('utf-8')


class S3Client:
    """Thin wrapper over a boto3 S3 client bound to one bucket."""

    def __init__(
        self,
        endpoint: str,
        bucket: str,
        access_key: str,
        secret_key: str,
        public_base_url: str,
        region_name: str = 'us-east-1'
    ):
        """
        :param endpoint: S3-compatible endpoint URL
        :param bucket: Bucket holding the attachments
        :param access_key: S3 access key id
        :param secret_key: S3 secret key
        :param public_base_url: Base URL public objects are served from (bucket is appended)
        :param region_name: S3 region (default us-east-1)
        """
        self.endpoint = endpoint
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip('/')
        self.region_name = region_name
        self._access_key = access_key
        self._secret_key = secret_key
        self._s3_client = None

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "S3Client":
        """
        Build a client from settings.

        :raises ConfigurationError: If the S3 credentials are not configured
        """
        settings = settings or get_settings()
        if not settings.s3_access_key or not settings.s3_secret_key:
            raise ConfigurationError(
                "TASKNEST_S3_ACCESS_KEY and TASKNEST_S3_SECRET_KEY are required for attachment uploads"
            )
        return cls(
            endpoint=settings.resolved_s3_endpoint,
            bucket=settings.storage_bucket,
            access_key=settings.s3_access_key,
            secret_key=settings.s3_secret_key,
            public_base_url=settings.public_storage_url,
            region_name=settings.s3_region,
        )

    def _get_s3_client(self):
        """Get or lazily create the boto3 S3 client."""
        if self._s3_client is None:
            self._s3_client = boto3.client(
                's3',
                endpoint_url=self.endpoint,
                aws_access_key_id=self._access_key,
                aws_secret_access_key=self._secret_key,
                region_name=self.region_name,
                config=BotoConfig(
                    signature_version='s3v4',
                    s3={'addressing_style': 'path'},
                    retries={'max_attempts': 1, 'mode': 'standard'},
                ),
            )
            logger.debug(f"Initialized S3 client for endpoint {self.endpoint}")
        return self._s3_client

    def put_object(self, key: str, data: bytes, content_type: str, overwrite: bool = False) -> dict:
        """
        Write bytes under key.

        :param key: Object key inside the bucket
        :param data: File data as bytes
        :param content_type: MIME type stored with the object
        :param overwrite: If False the write fails when the key already exists
        :return: S3 put_object response
        """
        kwargs = {
            'Bucket': self.bucket,
            'Key': key,
            'Body': data,
            'ContentType': content_type,
            'ContentMD5': get_md5(data),
            'CacheControl': CACHE_CONTROL,
        }
        if not overwrite:
            kwargs['IfNoneMatch'] = '*'
        return self._get_s3_client().put_object(**kwargs)

    def delete_object(self, key: str) -> dict:
        """
        Delete the object stored under key.

        :param key: Object key inside the bucket
        :return: S3 delete_object response
        """
        return self._get_s3_client().delete_object(Bucket=self.bucket, Key=key)

    def public_url(self, key: str) -> str:
        return f'{self.public_base_url}/{self.bucket}/{key}'
