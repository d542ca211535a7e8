import contextlib
import json
import logging
import typing

from gql.playground import PLAYGROUND_HTML
from graphql import GraphQLError
from starlette import status
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse, PlainTextResponse, Response
from starlette.routing import BaseRoute, Route
from starlette.types import Receive, Scope, Send

from .adapter import Bindings, ExecutionAdapter, Extensions, format_error
from .errors import StitchError
from .upstream import Upstream

logger = logging.getLogger(__name__)

ERROR_FORMATER = typing.Callable[[GraphQLError], typing.Dict[str, typing.Any]]


class GraphQL(Starlette):
    def __init__(
        self,
        adapter: ExecutionAdapter = None,
        *,
        upstream: Upstream = None,
        type_defs: Extensions = None,
        bindings: Bindings = None,
        playground: bool = True,
        debug: bool = False,
        routes: typing.List[BaseRoute] = None,
        path: str = '/',
        build_on_startup: bool = False,
        error_formater: ERROR_FORMATER = None,
        context_builder: typing.Callable = None,
        forward_authorization: bool = False,
        **kwargs,
    ):
        routes = routes or []
        if adapter:
            self.adapter = adapter
        elif upstream and type_defs is not None and bindings is not None:
            self.adapter = ExecutionAdapter(upstream, type_defs, bindings)
        else:
            raise Exception('Must provide an adapter, or an upstream with type defs and bindings.')

        routes.append(
            Route(
                path,
                ASGIApp(
                    self.adapter,
                    debug=debug,
                    playground=playground,
                    error_formater=error_formater,
                    context_builder=context_builder,
                    forward_authorization=forward_authorization,
                ),
            )
        )
        kwargs.setdefault('lifespan', self.make_lifespan(build_on_startup))
        super().__init__(debug=debug, routes=routes, **kwargs)

    def make_lifespan(self, build_on_startup: bool) -> typing.Callable:
        adapter = self.adapter

        @contextlib.asynccontextmanager
        async def lifespan(app: Starlette) -> typing.AsyncIterator[None]:
            if build_on_startup:
                try:
                    await adapter.initialize()
                except StitchError as exc:
                    # The first request retries the build.
                    logger.warning('Composed schema not built on startup: %s', exc.message)
            yield
            await adapter.close()

        return lifespan


class ASGIApp:
    def __init__(
        self,
        adapter: ExecutionAdapter,
        debug: bool = False,
        playground: bool = True,
        error_formater: ERROR_FORMATER = None,
        context_builder: typing.Callable = None,
        forward_authorization: bool = False,
    ) -> None:
        self.adapter = adapter
        self.playground = playground
        self.error_formater = error_formater or self.format_error
        self.debug = debug
        self.context_builder = context_builder
        self.forward_authorization = forward_authorization

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive=receive, send=send)
        response = await self.handle_graphql(request)
        await response(scope, receive, send)

    def format_error(self, error: GraphQLError) -> typing.Dict[str, typing.Any]:
        return format_error(error, debug=self.debug)

    async def handle_graphql(self, request: Request) -> Response:
        if request.method in ('GET', 'HEAD'):
            if 'text/html' in request.headers.get('Accept', ''):
                if not self.playground:
                    return PlainTextResponse('Not Found', status_code=status.HTTP_404_NOT_FOUND)
                return HTMLResponse(PLAYGROUND_HTML)

            data = request.query_params  # type: typing.Mapping[str, typing.Any]

        elif request.method == 'POST':
            content_type = request.headers.get('Content-Type', '')

            if 'application/json' in content_type:
                try:
                    data = await request.json()
                except ValueError:
                    return PlainTextResponse(
                        'Request body is not valid JSON', status_code=status.HTTP_400_BAD_REQUEST,
                    )
            elif 'application/graphql' in content_type:
                body = await request.body()
                data = {'query': body.decode()}
            elif 'query' in request.query_params:
                data = request.query_params
            else:
                return PlainTextResponse(
                    'Unsupported Media Type', status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
                )
        else:
            return PlainTextResponse(
                'Method Not Allowed', status_code=status.HTTP_405_METHOD_NOT_ALLOWED
            )

        try:
            query = data['query']
            variables = data.get('variables')
            operation_name = data.get('operationName')
        except (KeyError, AttributeError, TypeError):
            return PlainTextResponse(
                'No GraphQL query found in the request', status_code=status.HTTP_400_BAD_REQUEST,
            )
        if isinstance(variables, str):
            # GET requests carry the variables JSON-encoded in the query string.
            try:
                variables = json.loads(variables)
            except ValueError:
                return PlainTextResponse(
                    'Variables are invalid JSON', status_code=status.HTTP_400_BAD_REQUEST,
                )

        context = self.context_builder() if self.context_builder else {}
        context.update(request=request)

        headers = {}
        if self.forward_authorization and 'Authorization' in request.headers:
            headers['Authorization'] = request.headers['Authorization']

        result = await self.adapter.execute(
            query,
            variables=variables,
            operation_name=operation_name,
            context=context,
            headers=headers or None,
        )
        error_data = [self.error_formater(err) for err in result.errors] if result.errors else None
        response_data = {'data': result.data, 'errors': error_data}

        return JSONResponse(response_data, status_code=status.HTTP_200_OK)
