"""The process-wide owner of the composed schema.

The composed schema is expensive to build (the upstream API is introspected
over the network) so it is built once, on first use, and shared by every
request afterwards::

    UNINITIALIZED --initialize()--> BUILDING --success--> READY
                                       |
                                       +--failure--> UNINITIALIZED

Concurrent first requests wait for the same build instead of introspecting
the upstream API again. READY is never left; a failed build leaves the
adapter UNINITIALIZED so that the next request retries.
"""
import asyncio
import enum
import inspect
import logging
import traceback
import typing

from graphql import (
    DocumentNode,
    ExecutionResult,
    FieldsOnCorrectTypeRule,
    GraphQLError,
    KnownTypeNamesRule,
    OperationType,
    execute,
    get_operation_ast,
    parse,
    specified_rules,
    validate,
)

from .compute import ComputeBinding, ComputeRegistry
from .errors import StitchError, UnknownTypeError, UpstreamError, UpstreamIntrospectionError
from .extensions import TypeExtension, load_extensions
from .merge import ComposedSchema, merge
from .upstream import Upstream

logger = logging.getLogger(__name__)

Extensions = typing.Union[str, DocumentNode, typing.Sequence[TypeExtension]]
Bindings = typing.Union[ComputeRegistry, typing.Sequence[ComputeBinding]]


def tag_errors(rule: type, code: str) -> type:
    class TaggedRule(rule):
        def report_error(self, error: GraphQLError) -> None:
            error.extensions = {**(error.extensions or {}), 'code': code}
            super().report_error(error)

    TaggedRule.__name__ = rule.__name__
    return TaggedRule


# Selecting a field or type that is neither upstream nor declared is reported
# with the same code as extending an unknown type.
VALIDATION_RULES = tuple(
    tag_errors(rule, UnknownTypeError.code) if rule in (FieldsOnCorrectTypeRule, KnownTypeNamesRule) else rule
    for rule in specified_rules
)


def format_error(error: GraphQLError, debug: bool = False) -> typing.Dict[str, typing.Any]:
    if not error:
        raise ValueError("Received null or undefined error.")
    formatted = dict(  # noqa: E701 (pycqa/flake8#394)
        message=error.message or "An unknown error occurred.",
        locations=[l._asdict() for l in error.locations] if error.locations else None,
        path=error.path,
    )
    extensions = dict(error.extensions or {})
    if debug and error.original_error:
        original_error = error.original_error
        exception = dict(extensions.get('exception', {}))
        exception['traceback'] = traceback.format_exception(
            type(original_error), original_error, original_error.__traceback__
        )
        extensions['exception'] = exception
    if extensions:
        formatted.update(extensions=extensions)
    return formatted


class State(enum.Enum):
    UNINITIALIZED = 'uninitialized'
    BUILDING = 'building'
    READY = 'ready'


class ExecutionAdapter:
    upstream: Upstream
    state: State

    def __init__(self, upstream: Upstream, extensions: Extensions, bindings: Bindings) -> None:
        self.upstream = upstream
        self.extensions = extensions
        self.bindings = bindings
        self.state = State.UNINITIALIZED
        self._composed: typing.Optional[ComposedSchema] = None
        self._lock = asyncio.Lock()

    @property
    def composed(self) -> typing.Optional[ComposedSchema]:
        return self._composed

    async def initialize(self) -> ComposedSchema:
        if self._composed is not None:
            logger.debug('Already initialized')
            return self._composed

        async with self._lock:
            if self._composed is not None:
                logger.debug('Already initialized')
                return self._composed

            self.state = State.BUILDING
            logger.info('Building composed schema')
            try:
                self._composed = await self.build()
            except Exception:
                logger.exception('Failed to build composed schema')
                raise
            finally:
                self.state = State.READY if self._composed is not None else State.UNINITIALIZED
            logger.info('Composed schema ready')
            return self._composed

    async def build(self) -> ComposedSchema:
        try:
            upstream_schema = await self.upstream.introspect()
        except UpstreamIntrospectionError:
            raise
        except UpstreamError as exc:
            raise UpstreamIntrospectionError(f'Introspection failed: {exc.message}') from exc

        try:
            extensions = self.extensions
            if isinstance(extensions, (str, DocumentNode)):
                extensions = load_extensions(extensions)
            bindings = self.bindings
            if isinstance(bindings, ComputeRegistry):
                bindings = bindings.bindings()
            return merge(upstream_schema, extensions, bindings)
        except StitchError:
            raise
        except Exception as exc:
            raise StitchError(f'Failed to compose the schema: {exc}') from exc

    async def execute(
        self,
        query: str,
        variables: typing.Dict[str, typing.Any] = None,
        operation_name: str = None,
        context: typing.Dict[str, typing.Any] = None,
        headers: typing.Mapping[str, str] = None,
    ) -> ExecutionResult:
        try:
            composed = await self.initialize()
        except StitchError as exc:
            return ExecutionResult(data=None, errors=[GraphQLError(exc.message, original_error=exc)])

        try:
            document = parse(query)
        except GraphQLError as error:
            return ExecutionResult(data=None, errors=[error])

        errors = validate(composed.schema, document, VALIDATION_RULES)
        if errors:
            return ExecutionResult(data=None, errors=errors)

        operation = get_operation_ast(document, operation_name)
        if operation and operation.operation == OperationType.SUBSCRIPTION:
            return ExecutionResult(
                data=None, errors=[GraphQLError('Subscriptions are not supported.', operation)]
            )

        context_value = dict(context or {})
        context_value.update(
            upstream=self.upstream, upstream_variables=variables or {}, upstream_headers=headers,
        )
        result = execute(
            composed.schema,
            document,
            variable_values=variables,
            operation_name=operation_name,
            context_value=context_value,
        )
        if inspect.isawaitable(result):
            result = await result
        return result

    async def handle(self, request: typing.Mapping[str, typing.Any], **kwargs: typing.Any) -> typing.Dict[str, typing.Any]:
        result = await self.execute(
            request['query'],
            variables=request.get('variables'),
            operation_name=request.get('operationName'),
            **kwargs,
        )
        return {
            'data': result.data,
            'errors': [format_error(error) for error in result.errors] if result.errors else None,
        }

    async def close(self) -> None:
        aclose = getattr(self.upstream, 'aclose', None)
        if aclose is not None:
            await aclose()
