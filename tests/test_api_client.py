"""Tests for the HTTP client."""

import base64

import pytest
from unittest.mock import AsyncMock, MagicMock, Mock, patch
import requests

from ado_migrate.api.client import (
    APIResponse,
    ApiClientFactory,
    HttpClient,
    check_status,
)
from ado_migrate.api.exceptions import (
    ApiError,
    ApiPermissionError,
    ApiValidationError,
    AuthenticationError,
    NotFoundError,
    RateLimitError,
)
from ado_migrate.config.config import AdoInstanceConfig, GithubInstanceConfig


def _async_response(status, text='', headers=None):
    """Build an aiohttp response usable as an async context manager."""
    response = MagicMock()
    response.status = status
    response.headers = headers or {}
    response.text = AsyncMock(return_value=text)
    response.__aenter__.return_value = response
    response.__aexit__.return_value = None
    return response


def _async_session(*responses):
    session = MagicMock()
    session.request.side_effect = list(responses)
    session.__aenter__.return_value = session
    session.__aexit__.return_value = None
    return session


class TestAPIResponse:
    """Test API response model."""

    def test_api_response_creation(self):
        response = APIResponse(
            status_code=200,
            data={'id': 1, 'name': 'test'},
            headers={'Content-Type': 'application/json'},
            success=True,
        )

        assert response.status_code == 200
        assert response.data == {'id': 1, 'name': 'test'}
        assert response.success is True


class TestCheckStatus:
    """Test status code to exception mapping."""

    def test_success_passes(self):
        check_status(204, {}, None)

    @pytest.mark.parametrize(
        'status_code,error',
        [
            (401, AuthenticationError),
            (403, ApiPermissionError),
            (404, NotFoundError),
            (422, ApiValidationError),
            (500, ApiError),
        ],
    )
    def test_error_statuses(self, status_code, error):
        with pytest.raises(error) as exc_info:
            check_status(status_code, {}, {'message': 'boom'})

        assert exc_info.value.status_code == status_code

    def test_rate_limit(self):
        with pytest.raises(RateLimitError) as exc_info:
            check_status(429, {'Retry-After': '30'}, None)

        assert exc_info.value.retry_after == 30


class TestHttpClient:
    """Test synchronous requests."""

    def setup_method(self):
        """Set up test fixtures."""
        self.client = HttpClient(
            'https://api.example.com/', {'Authorization': 'Bearer token'}
        )

    def test_client_initialization(self):
        assert self.client.base_url == 'https://api.example.com'
        assert self.client.headers['Authorization'] == 'Bearer token'
        assert self.client.session.headers['Authorization'] == 'Bearer token'

    def test_build_url(self):
        assert self.client.build_url('/user') == 'https://api.example.com/user'
        assert self.client.build_url('orgs/x') == 'https://api.example.com/orgs/x'
        assert (
            self.client.build_url('https://other.example.com/a')
            == 'https://other.example.com/a'
        )

    @patch('requests.Session.get')
    def test_get_request_success(self, mock_get):
        mock_response = Mock()
        mock_response.status_code = 200
        mock_response.json.return_value = {'login': 'octocat'}
        mock_response.headers = {'Content-Type': 'application/json'}
        mock_response.content = b'{"login": "octocat"}'
        mock_response.text = '{"login": "octocat"}'
        mock_get.return_value = mock_response

        response = self.client.get('/user')

        assert response.success is True
        assert response.data == {'login': 'octocat'}

    @patch('requests.Session.get')
    def test_get_request_401(self, mock_get):
        mock_response = Mock()
        mock_response.status_code = 401
        mock_response.headers = {}
        mock_response.content = b''
        mock_response.text = ''
        mock_get.return_value = mock_response

        with pytest.raises(AuthenticationError):
            self.client.get('/user')

    @patch('requests.Session.get')
    def test_test_connection_failure(self, mock_get):
        mock_get.side_effect = requests.RequestException('Connection failed')

        assert self.client.test_connection('/user') is False


class TestAsyncMethods:
    """Test asynchronous requests."""

    def setup_method(self):
        self.client = HttpClient('https://api.example.com', {})

    @pytest.mark.asyncio
    async def test_get_async_success(self):
        session = _async_session(_async_response(200, '{"id": 1}'))

        with patch('aiohttp.ClientSession', return_value=session):
            response = await self.client.get_async('/repos')

        assert response.success is True
        assert response.data == {'id': 1}

    @pytest.mark.asyncio
    async def test_get_async_404(self):
        session = _async_session(_async_response(404))

        with patch('aiohttp.ClientSession', return_value=session):
            with pytest.raises(NotFoundError):
                await self.client.get_async('/nonexistent')

    @pytest.mark.asyncio
    async def test_get_paginated_follows_continuation_token(self):
        session = _async_session(
            _async_response(
                200,
                '{"count": 2, "value": [{"id": 1}, {"id": 2}]}',
                headers={'X-MS-ContinuationToken': 'next'},
            ),
            _async_response(200, '{"count": 1, "value": [{"id": 3}]}'),
        )

        with patch('aiohttp.ClientSession', return_value=session):
            items = await self.client.get_paginated_async('/_apis/projects')

        assert items == [{'id': 1}, {'id': 2}, {'id': 3}]
        second_call = session.request.call_args_list[1]
        assert second_call.kwargs['params'] == {'continuationToken': 'next'}

    @pytest.mark.asyncio
    async def test_graphql_errors_raise(self):
        session = _async_session(
            _async_response(200, '{"data": null, "errors": [{"message": "bad query"}]}')
        )

        with patch('aiohttp.ClientSession', return_value=session):
            with pytest.raises(ApiError, match='bad query'):
                await self.client.post_graphql_async('/graphql', {'query': '{}'})


class TestApiClientFactory:
    """Test client factory."""

    def test_create_ado_client(self):
        client = ApiClientFactory.create_ado_client(AdoInstanceConfig(pat='secret'))

        expected = base64.b64encode(b':secret').decode('ascii')
        assert client.headers['Authorization'] == f'Basic {expected}'
        assert client.base_url == 'https://dev.azure.com'

    def test_create_ado_client_without_pat(self):
        with pytest.raises(AuthenticationError):
            ApiClientFactory.create_ado_client(AdoInstanceConfig())

    def test_create_github_client(self):
        client = ApiClientFactory.create_github_client(
            GithubInstanceConfig(token='gh-token', org='octo-org')
        )

        assert client.headers['Authorization'] == 'Bearer gh-token'
        assert client.base_url == 'https://api.github.com'
