import logging
from collections import deque
from typing import Any, Literal

import httpx
from httpx import Response, Timeout
from loguru import logger

from tasknest.exceptions import APIError, NetworkError
from tasknest.utils.settings import Settings, get_settings

# Suppress verbose httpx debug logging
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

USER_AGENT = 'tasknest/0.1.0'

SENSITIVE_HEADERS = {'authorization', 'apikey', 'cookie', 'set-cookie'}
SENSITIVE_KEYS = {'password', 'token', 'access_token', 'refresh_token', 'secret'}

HttpMethod = Literal['GET', 'POST', 'PUT', 'PATCH', 'DELETE']

ERROR_FIELDS = ('error_description', 'msg', 'message', 'error')


def _sanitize_for_logging(data: dict | None, sensitive_keys: set[str] | None = None) -> dict[str, Any] | None:
    """Remove sensitive data from dict before logging."""
    if data is None:
        return None
    sensitive_keys = sensitive_keys or SENSITIVE_KEYS
    result: dict[str, Any] = {}
    for key, value in data.items():
        if key.lower() in sensitive_keys:
            result[key] = '[REDACTED]'
        elif isinstance(value, dict):
            result[key] = _sanitize_for_logging(value, sensitive_keys)
        else:
            result[key] = value
    return result


def _sanitize_headers(headers: dict | None) -> dict | None:
    """Remove sensitive headers before logging."""
    if headers is None:
        return None
    return {k: '[REDACTED]' if k.lower() in SENSITIVE_HEADERS else v for k, v in headers.items()}


def _handle_response_error(response: Response) -> None:
    """Check response status and raise appropriate exception."""
    if response.status_code >= 400:
        error_msg = response.text
        try:
            error_body = response.json()
        except ValueError:
            error_body = None
        if isinstance(error_body, dict):
            error_msg = next((str(error_body[f]) for f in ERROR_FIELDS if error_body.get(f)), error_msg)
        raise APIError(f"HTTP {response.status_code}: {error_msg}")


class Client:
    """Async HTTP client for the backend's REST, auth and function endpoints."""

    def __init__(self, settings: Settings | None = None, history_len: int = 30) -> None:
        settings = settings or get_settings()
        headers = {
            'accept': 'application/json',
            'user-agent': USER_AGENT,
            'content-type': 'application/json; charset=utf-8',
        }
        if settings.anon_key:
            headers['apikey'] = settings.anon_key
        self.base_url = settings.backend_url.rstrip('/')
        self.http_client = httpx.AsyncClient(
            http2=True,
            base_url=self.base_url,
            headers=headers,
            timeout=Timeout(timeout=20.0)
        )
        self.history: deque[Response] = deque(maxlen=history_len)

    async def __aenter__(self) -> "Client":
        return self

    async def __aexit__(self, exc_type: type | None, exc_val: BaseException | None, exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self.http_client.aclose()

    async def _request(
        self,
        method: HttpMethod,
        url: str,
        data: dict[str, Any] | None = None,
        query_params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | Timeout | None = None
    ) -> Any:
        """
        Make an HTTP request with common error handling and logging.

        :param method: HTTP method
        :param url: Request URL, relative to the backend base URL
        :param data: JSON body data (for POST/PUT/PATCH)
        :param query_params: Query parameters
        :param headers: Additional headers
        :param timeout: Optional per-request timeout (seconds or Timeout object)
        :return: Parsed JSON body, or an empty dict for empty responses
        :raises NetworkError: On connection/timeout errors
        :raises APIError: On HTTP errors or non-JSON responses
        """
        # Filter out None values from query params
        if query_params:
            query_params = {k: v for k, v in query_params.items() if v is not None}

        logger.debug(
            f'{method} request to {url}',
            data=_sanitize_for_logging(data) if data else None,
            query_params=query_params,
            headers=_sanitize_headers(headers)
        )

        try:
            request_kwargs: dict[str, Any] = {
                'url': url,
                'params': query_params,
                'headers': headers,
            }
            if method in ('POST', 'PUT', 'PATCH'):
                request_kwargs['json'] = data
            if timeout is not None:
                request_kwargs['timeout'] = timeout

            response = await self.http_client.request(method, **request_kwargs)
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request timed out: {e}")
        except httpx.RequestError as e:
            raise NetworkError(f"Network error: {e}")

        self.history.append(response)

        _handle_response_error(response)

        if not response.content:
            logger.debug(f'Response ({response.status_code}), empty body')
            return {}

        try:
            json_body = response.json()
        except ValueError:
            logger.debug(f'Response ({response.status_code}), body: {response.text}')
            raise APIError(f'Non-JSON response ({response.status_code}): {response.text}')
        logger.debug(f'Response ({response.status_code}), body: {json_body}')
        return json_body

    async def get(
        self,
        url: str,
        query_params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | Timeout | None = None
    ) -> Any:
        return await self._request('GET', url, query_params=query_params, headers=headers, timeout=timeout)

    async def post(
        self,
        url: str,
        data: dict[str, Any] | None = None,
        query_params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | Timeout | None = None
    ) -> Any:
        return await self._request('POST', url, data=data, query_params=query_params, headers=headers, timeout=timeout)

    async def patch(
        self,
        url: str,
        data: dict[str, Any] | None = None,
        query_params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | Timeout | None = None
    ) -> Any:
        return await self._request('PATCH', url, data=data, query_params=query_params, headers=headers, timeout=timeout)

    async def delete(
        self,
        url: str,
        query_params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | Timeout | None = None
    ) -> Any:
        return await self._request('DELETE', url, query_params=query_params, headers=headers, timeout=timeout)

    def set_access_token(self, token: str | None) -> None:
        """Send token as the bearer credential on every request, or stop sending one."""
        if token:
            self.http_client.headers['authorization'] = f'Bearer {token}'
        else:
            self.http_client.headers.pop('authorization', None)
