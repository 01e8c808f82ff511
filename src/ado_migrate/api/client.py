"""HTTP client shared by the Azure DevOps and GitHub APIs."""

import base64
import json
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

import aiohttp
import requests
from loguru import logger
from pydantic import BaseModel

from ..config.config import AdoInstanceConfig, GithubInstanceConfig
from .exceptions import (
    ApiError,
    ApiPermissionError,
    ApiValidationError,
    AuthenticationError,
    NotFoundError,
    RateLimitError,
)

USER_AGENT = 'ado-migrate/0.1.0'
ADO_CONTINUATION_HEADER = 'x-ms-continuationtoken'


class APIResponse(BaseModel):
    """Standard API response wrapper."""

    status_code: int
    data: Any
    headers: Dict[str, str]
    success: bool


def _error_message(status_code: int, data: Any, text: str) -> str:
    if isinstance(data, dict) and data.get('message'):
        return str(data['message'])
    return f'HTTP {status_code}: {text}' if text else f'HTTP {status_code}'


def check_status(
    status_code: int, headers: Dict[str, str], data: Any, text: str = ''
) -> None:
    """Translate an HTTP error status into the matching exception.

    Args:
        status_code: HTTP status code
        headers: Response headers
        data: Parsed response body
        text: Raw response body

    Raises:
        ApiError: For any status >= 400
    """
    if status_code < 400:
        return

    message = _error_message(status_code, data, text)

    if status_code == 429:
        retry_after = int(headers.get('Retry-After', 60))
        raise RateLimitError(
            f'Rate limit exceeded. Retry after {retry_after} seconds',
            retry_after=retry_after,
            status_code=status_code,
        )

    if status_code == 401:
        raise AuthenticationError('Authentication failed', status_code=status_code)

    if status_code == 403:
        raise ApiPermissionError(
            f'Permission denied: {message}',
            status_code=status_code,
            response_data=data,
        )

    if status_code == 404:
        raise NotFoundError('Resource not found', status_code=status_code)

    if status_code == 422:
        raise ApiValidationError(
            f'Validation failed: {message}',
            status_code=status_code,
            response_data=data,
        )

    raise ApiError(
        f'API request failed: {message}',
        status_code=status_code,
        response_data=data,
    )


class HttpClient:
    """JSON-over-HTTP client with sync (requests) and async (aiohttp) calls."""

    def __init__(
        self, base_url: str, auth_headers: Dict[str, str], timeout: int = 30
    ):
        """Initialize HTTP client.

        Args:
            base_url: Base URL that relative endpoints are resolved against
            auth_headers: Authentication headers sent with every request
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.headers = {
            'Content-Type': 'application/json',
            'Accept': 'application/json',
            'User-Agent': USER_AGENT,
            **auth_headers,
        }

        self.session = requests.Session()
        self.session.headers.update(self.headers)

        logger.debug(f'Initialized HTTP client for {self.base_url}')

    def build_url(self, endpoint: str) -> str:
        """Build a full URL; absolute URLs are returned unchanged."""
        if endpoint.startswith(('http://', 'https://')):
            return endpoint
        return urljoin(self.base_url + '/', endpoint.lstrip('/'))

    def _handle_response(self, response: requests.Response) -> APIResponse:
        headers = dict(response.headers)

        try:
            data = response.json() if response.content else None
        except ValueError:
            data = response.text

        check_status(response.status_code, headers, data, response.text)

        return APIResponse(
            status_code=response.status_code,
            data=data,
            headers=headers,
            success=200 <= response.status_code < 300,
        )

    def get(
        self, endpoint: str, params: Optional[Dict[str, Any]] = None, **kwargs
    ) -> APIResponse:
        """Make GET request.

        Args:
            endpoint: API endpoint
            params: Query parameters
            **kwargs: Additional request arguments

        Returns:
            API response
        """
        url = self.build_url(endpoint)

        try:
            response = self.session.get(
                url, params=params, timeout=self.timeout, **kwargs
            )
            return self._handle_response(response)
        except requests.RequestException as e:
            logger.error(f'Network error during GET request: {e}')
            raise ApiError(f'Network error: {e}')

    async def request_async(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Any] = None,
    ) -> APIResponse:
        """Make asynchronous API request.

        Args:
            method: HTTP method
            endpoint: API endpoint or absolute URL
            params: Query parameters
            data: Request body data

        Returns:
            API response
        """
        url = self.build_url(endpoint)
        timeout = aiohttp.ClientTimeout(total=self.timeout)

        async with aiohttp.ClientSession(
            headers=self.headers, timeout=timeout
        ) as session:
            try:
                async with session.request(
                    method=method, url=url, params=params, json=data
                ) as response:
                    response_headers = dict(response.headers)
                    response_text = await response.text()

                    try:
                        response_data = (
                            json.loads(response_text) if response_text else None
                        )
                    except json.JSONDecodeError:
                        response_data = response_text

                    check_status(
                        response.status, response_headers, response_data, response_text
                    )

                    return APIResponse(
                        status_code=response.status,
                        data=response_data,
                        headers=response_headers,
                        success=200 <= response.status < 300,
                    )

            except aiohttp.ClientError as e:
                logger.error(f'Network error during {method} {url}: {e}')
                raise ApiError(f'Network error: {e}')

    async def get_async(
        self, endpoint: str, params: Optional[Dict[str, Any]] = None
    ) -> APIResponse:
        return await self.request_async('GET', endpoint, params=params)

    async def post_async(self, endpoint: str, data: Optional[Any] = None) -> APIResponse:
        return await self.request_async('POST', endpoint, data=data)

    async def put_async(self, endpoint: str, data: Optional[Any] = None) -> APIResponse:
        return await self.request_async('PUT', endpoint, data=data)

    async def patch_async(
        self, endpoint: str, data: Optional[Any] = None
    ) -> APIResponse:
        return await self.request_async('PATCH', endpoint, data=data)

    async def get_paginated_async(
        self, endpoint: str, params: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """Get every item of an Azure DevOps list endpoint.

        Azure DevOps wraps lists as ``{"count": n, "value": [...]}`` and signals
        further pages with a continuation token header.

        Args:
            endpoint: API endpoint
            params: Query parameters

        Returns:
            List of all items from all pages
        """
        params = dict(params or {})
        all_items: List[Dict[str, Any]] = []

        while True:
            response = await self.get_async(endpoint, params=params)

            data = response.data
            if isinstance(data, dict):
                all_items.extend(data.get('value') or [])
            elif isinstance(data, list):
                all_items.extend(data)

            continuation = {
                k.lower(): v for k, v in response.headers.items()
            }.get(ADO_CONTINUATION_HEADER)
            if not continuation:
                break

            params['continuationToken'] = continuation

        logger.debug(f'Retrieved {len(all_items)} items from {endpoint}')
        return all_items

    async def post_graphql_async(self, endpoint: str, payload: Dict[str, Any]) -> Any:
        """Run a GraphQL query or mutation.

        Raises:
            ApiError: If the response carries GraphQL errors
        """
        response = await self.post_async(endpoint, data=payload)
        data = response.data or {}

        errors = data.get('errors') if isinstance(data, dict) else None
        if errors:
            message = errors[0].get('message', 'Unknown GraphQL error')
            raise ApiError(message, status_code=response.status_code, response_data=data)

        return data

    async def download_async(self, url: str, destination: Path) -> None:
        """Stream a file to disk.

        Download URLs are pre-signed, so no authentication headers are sent.
        """
        timeout = aiohttp.ClientTimeout(total=None)
        destination.parent.mkdir(parents=True, exist_ok=True)

        async with aiohttp.ClientSession(timeout=timeout) as session:
            try:
                async with session.get(url) as response:
                    if response.status >= 400:
                        text = await response.text()
                        check_status(response.status, dict(response.headers), None, text)

                    with open(destination, 'wb') as f:
                        async for chunk in response.content.iter_chunked(64 * 1024):
                            f.write(chunk)
            except aiohttp.ClientError as e:
                logger.error(f'Network error while downloading {url}: {e}')
                raise ApiError(f'Network error: {e}')

    def test_connection(self, endpoint: str) -> bool:
        """Test connection with a cheap authenticated GET.

        Returns:
            True if connection successful, False otherwise
        """
        try:
            return self.get(endpoint).success
        except ApiError as e:
            logger.error(f'Connection test failed for {self.base_url}: {e}')
            return False

    def close(self):
        """Close the client session."""
        self.session.close()
        logger.debug(f'HTTP client session closed for {self.base_url}')


class ApiClientFactory:
    """Factory for creating authenticated HTTP clients."""

    @staticmethod
    def create_ado_client(config: AdoInstanceConfig) -> HttpClient:
        """Create an Azure DevOps client authenticated with a PAT.

        Raises:
            AuthenticationError: If no PAT is configured
        """
        if not config.pat:
            raise AuthenticationError('An Azure DevOps personal access token is required')

        encoded = base64.b64encode(f':{config.pat}'.encode('utf-8')).decode('ascii')
        return HttpClient(
            config.url, {'Authorization': f'Basic {encoded}'}, timeout=config.timeout
        )

    @staticmethod
    def create_github_client(config: GithubInstanceConfig) -> HttpClient:
        """Create a GitHub client authenticated with a token.

        Raises:
            AuthenticationError: If no token is configured
        """
        if not config.token:
            raise AuthenticationError('A GitHub personal access token is required')

        return HttpClient(
            config.api_url,
            {
                'Authorization': f'Bearer {config.token}',
                'GraphQL-Features': 'import_api,mannequin_claiming',
            },
            timeout=config.timeout,
        )
