from tasknest.api.base_api import BaseApi
from tasknest.exceptions import APIError
from tasknest.models.task import ContentKind, ContentRecord
from tasknest.utils.retry import retry
from tasknest.utils.validation import validate_id

RECORD_FIELDS = 'id,name,content,user_id,updated_at'


class TaskApi(BaseApi):
    """
    Reads and writes the content field of tasks and subtasks.

    Row isolation is enforced by the data store; the caller's bearer token decides
    which rows are visible.
    """

    @retry(max_retries=2)
    async def get_record(self, kind: ContentKind, record_id: str) -> ContentRecord:
        """
        Fetches one task or subtask.

        :param kind: Table the record lives in
        :param record_id: Record id
        :return: The record
        :raises APIError: If the record does not exist or is not visible
        """
        validate_id(record_id, "record_id")
        rows = await self._client.get(
            f'/rest/v1/{kind.value}',
            query_params={'id': f'eq.{record_id}', 'select': RECORD_FIELDS}
        )
        if not rows:
            raise APIError(f"{kind.value} record {record_id} not found")
        return ContentRecord(**rows[0])

    async def update_content(self, kind: ContentKind, record_id: str, content: str) -> ContentRecord:
        """
        Replaces the content field verbatim. Last write wins.

        :param kind: Table the record lives in
        :param record_id: Record id
        :param content: New content
        :return: The updated record
        """
        validate_id(record_id, "record_id")
        rows = await self._client.patch(
            f'/rest/v1/{kind.value}',
            data={'content': content},
            query_params={'id': f'eq.{record_id}', 'select': RECORD_FIELDS},
            headers={'prefer': 'return=representation'}
        )
        if not rows:
            raise APIError(f"{kind.value} record {record_id} not found")
        return ContentRecord(**rows[0])
