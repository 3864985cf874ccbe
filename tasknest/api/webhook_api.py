from typing import Any

from tasknest.api.base_api import BaseApi
from tasknest.exceptions import APIError
from tasknest.utils.validation import validate_non_empty

PROXY_FUNCTION = 'kanbandot-proxy'


class WebhookApi(BaseApi):
    """
    Pushes items to an external tracker through the backend's webhook proxy.

    The proxy looks up the caller's configured webhook URL and forwards the
    title and description; this client never sees the URL.
    """

    async def send_task(self, title: str, description: str | None = None) -> dict[str, Any]:
        """
        :param title: Item title, required
        :param description: Item description (Markdown content)
        :return: The tracker's response as relayed by the proxy
        :raises ValidationError: If title is empty
        :raises APIError: If the proxy or the tracker reports an error
        """
        validate_non_empty(title, "Title")
        json_response = await self._client.post(
            f'/functions/v1/{PROXY_FUNCTION}',
            data={'title': title, 'description': description or ''}
        )
        if json_response.get('error') or not json_response.get('success'):
            raise APIError(f"Webhook delivery failed: {json_response.get('error', 'unknown error')}")
        return json_response.get('result') or {}
