import asyncio
import mimetypes
import uuid
from collections.abc import Callable
from datetime import datetime

from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from tasknest.exceptions import AuthRequiredError, StorageDeleteError, StorageWriteError, ValidationError
from tasknest.models.attachment import AttachmentRef
from tasknest.storage.s3_client import S3Client
from tasknest.utils.validation import DEFAULT_MAX_UPLOAD_MB, validate_file_size

PLACEHOLDER_NAMES = {'image.png', 'blob'}
DEFAULT_EXTENSION = 'png'
MISSING_OBJECT_CODES = {'NoSuchKey', 'NotFound', '404'}


def is_placeholder_name(file_name: str | None) -> bool:
    """Names browsers give pasted screenshots and unnamed blobs."""
    name = (file_name or '').strip().lower()
    return not name or name in PLACEHOLDER_NAMES or name.startswith('image')


def extension_for(file_name: str | None, mime_type: str | None) -> str:
    """
    Pick the stored extension.

    Real file names keep their own extension. Placeholder names, and names
    without one, fall back to the MIME subtype, then to ``png``.
    """
    name = (file_name or '').strip()
    if not is_placeholder_name(name) and '.' in name:
        extension = name.rsplit('.', 1)[-1].lower()
        if extension:
            return extension

    subtype = (mime_type or '').partition('/')[2].split('+')[0].split(';')[0].strip().lower()
    if not subtype:
        return DEFAULT_EXTENSION
    if subtype == 'octet-stream':
        return 'bin'
    return subtype


def screenshot_name(extension: str, now: datetime) -> str:
    return f"screenshot-{now.strftime('%Y%m%d%H%M%S')}.{extension}"


def build_object_key(owner_id: str, generated_id: str, extension: str) -> str:
    return f'{owner_id}/{generated_id}.{extension}'


def object_key_from_url(url: str, owner_id: str) -> str:
    """Map a public url back to its key inside the owner's namespace."""
    file_name = url.split('?', 1)[0].split('/')[-1]
    if not file_name:
        raise ValidationError(f"Cannot derive a storage key from url: {url}")
    return f'{owner_id}/{file_name}'


def _error_message(e: ClientError) -> str:
    error = e.response.get('Error', {})
    return error.get('Message') or error.get('Code') or str(e)


def _require_owner(owner_id: str | None) -> str:
    if not owner_id:
        raise AuthRequiredError("User not authenticated")
    if '/' in owner_id:
        raise ValidationError("Owner id cannot contain '/'")
    return owner_id


class AttachmentStore:
    """
    Object store boundary for attachments.

    Every object lives under ``<owner_id>/``; the bucket's access policy trusts
    that prefix, so nothing is written without a resolved owner. boto3 calls run
    in a worker thread to keep the event loop free.
    """

    def __init__(
        self,
        s3_client: S3Client,
        max_upload_mb: int = DEFAULT_MAX_UPLOAD_MB,
        clock: Callable[[], datetime] = datetime.now
    ):
        """
        :param s3_client: Client bound to the attachment bucket
        :param max_upload_mb: Upload size limit in megabytes (default 10)
        :param clock: Source of the timestamp used in generated screenshot names
        """
        self._s3 = s3_client
        self.max_upload_mb = max_upload_mb
        self._clock = clock

    async def upload(
        self,
        data: bytes,
        file_name: str | None,
        mime_type: str | None,
        owner_id: str | None
    ) -> AttachmentRef:
        """
        Upload a file under a freshly generated key in the owner's namespace.

        :param data: File contents
        :param file_name: Original file name; placeholders get a generated screenshot name
        :param mime_type: MIME type reported by the source, guessed from the stored extension if empty
        :param owner_id: Authenticated user id
        :return: Reference to the stored object
        :raises AuthRequiredError: If no owner id is given
        :raises ValidationError: If the file exceeds the size limit
        :raises StorageWriteError: If the object store rejects the write
        """
        owner_id = _require_owner(owner_id)
        validate_file_size(len(data), self.max_upload_mb)

        extension = extension_for(file_name, mime_type)
        if not mime_type:
            mime_type = mimetypes.guess_type(f'upload.{extension}')[0] or 'application/octet-stream'
        display_name = (
            screenshot_name(extension, self._clock()) if is_placeholder_name(file_name) else file_name.strip()
        )
        key = build_object_key(owner_id, str(uuid.uuid4()), extension)

        try:
            await asyncio.to_thread(self._s3.put_object, key, data, mime_type, overwrite=False)
        except ClientError as e:
            logger.error(f"Upload of {key} failed: {_error_message(e)}")
            raise StorageWriteError(f"Failed to upload file: {_error_message(e)}") from e
        except BotoCoreError as e:
            logger.error(f"Upload of {key} failed: {e}")
            raise StorageWriteError(f"Failed to upload file: {e}") from e

        logger.debug(f"Uploaded {display_name} ({len(data)} bytes) to {key}")
        return AttachmentRef(
            url=self._s3.public_url(key),
            display_name=display_name,
            size_bytes=len(data),
            mime_type=mime_type,
        )

    async def remove(self, url: str, owner_id: str | None) -> None:
        """
        Delete the object behind url. Deleting a missing object succeeds.

        :param url: Public url of the attachment
        :param owner_id: Authenticated user id
        :raises AuthRequiredError: If no owner id is given
        :raises StorageDeleteError: If the object store reports a failure
        """
        owner_id = _require_owner(owner_id)
        key = object_key_from_url(url, owner_id)

        try:
            await asyncio.to_thread(self._s3.delete_object, key)
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') in MISSING_OBJECT_CODES:
                logger.debug(f"Attachment {key} already gone")
                return
            logger.error(f"Delete of {key} failed: {_error_message(e)}")
            raise StorageDeleteError(f"Failed to delete file: {_error_message(e)}") from e
        except BotoCoreError as e:
            logger.error(f"Delete of {key} failed: {e}")
            raise StorageDeleteError(f"Failed to delete file: {e}") from e

        logger.debug(f"Deleted attachment {key}")
