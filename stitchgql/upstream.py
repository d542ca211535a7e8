import logging
import typing
from typing import Protocol

import httpx
from graphql import GraphQLSchema, build_client_schema, get_introspection_query

from .errors import UpstreamExecutionError, UpstreamIntrospectionError

logger = logging.getLogger(__name__)


class Upstream(Protocol):
    async def introspect(self) -> GraphQLSchema:
        ...

    async def execute(
        self,
        query: str,
        variables: typing.Dict[str, typing.Any] = None,
        headers: typing.Mapping[str, str] = None,
    ) -> typing.Dict[str, typing.Any]:
        ...


class HTTPUpstream:
    """A remote GraphQL API reached over HTTP(S) with an optional bearer token."""

    url: str
    client: httpx.AsyncClient

    def __init__(
        self,
        url: str,
        *,
        token: str = None,
        timeout: float = 30.0,
        headers: typing.Mapping[str, str] = None,
        client: httpx.AsyncClient = None,
    ) -> None:
        self.url = url
        self.headers = dict(headers or {})
        if token:
            self.headers['Authorization'] = f'bearer {token}'
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def introspect(self) -> GraphQLSchema:
        logger.info('Introspecting upstream schema at %s', self.url)
        try:
            result = await self.execute(get_introspection_query(descriptions=True))
        except UpstreamExecutionError as exc:
            raise UpstreamIntrospectionError(f'Introspection of {self.url} failed: {exc.message}') from exc

        if result.get('errors') or not result.get('data'):
            raise UpstreamIntrospectionError(
                f'Introspection of {self.url} returned errors.', upstream_errors=result.get('errors')
            )
        try:
            return build_client_schema(result['data'])
        except (TypeError, ValueError) as exc:
            raise UpstreamIntrospectionError(f'Invalid introspection result from {self.url}: {exc}') from exc

    async def execute(
        self,
        query: str,
        variables: typing.Dict[str, typing.Any] = None,
        headers: typing.Mapping[str, str] = None,
    ) -> typing.Dict[str, typing.Any]:
        request_headers = {**self.headers, **(headers or {})}
        payload = {'query': query, 'variables': variables or {}}
        try:
            response = await self.client.post(self.url, json=payload, headers=request_headers)
        except httpx.HTTPError as exc:
            raise UpstreamExecutionError(f'Request to {self.url} failed: {exc}') from exc

        try:
            result = response.json()
        except ValueError:
            result = None

        if not isinstance(result, dict) or ('data' not in result and 'errors' not in result):
            raise UpstreamExecutionError(
                f'Upstream {self.url} responded with HTTP {response.status_code}.',
                status_code=response.status_code,
            )
        if response.is_error:
            # GraphQL servers may answer 4xx with a regular errors payload.
            logger.warning('Upstream %s responded with HTTP %s', self.url, response.status_code)
        return result
