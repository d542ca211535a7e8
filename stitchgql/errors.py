import typing


class StitchError(Exception):
    code = 'STITCH_ERROR'

    def __init__(self, message: str, **extensions: typing.Any) -> None:
        super().__init__(message)
        self.message = message
        self.extensions = dict(code=self.code, **extensions)


class ExtensionSyntaxError(StitchError):
    code = 'EXTENSION_SYNTAX'


class UnknownTypeError(StitchError):
    code = 'UNKNOWN_TYPE'


class FieldNameConflictError(StitchError):
    code = 'FIELD_NAME_CONFLICT'


class TemplateNotFoundError(StitchError):
    code = 'TEMPLATE_NOT_FOUND'


class ComputeNotFoundError(StitchError):
    code = 'COMPUTE_NOT_FOUND'


class ComputationError(StitchError):
    """Raised when a derived field can not be computed from its parent."""

    code = 'COMPUTATION_FAILED'


class EmptyAggregationError(ComputationError):
    code = 'EMPTY_AGGREGATION'


class UpstreamError(StitchError):
    code = 'UPSTREAM_ERROR'


class UpstreamIntrospectionError(UpstreamError):
    code = 'UPSTREAM_INTROSPECTION_FAILED'


class UpstreamExecutionError(UpstreamError):
    code = 'UPSTREAM_EXECUTION_FAILED'

    def __init__(self, message: str, errors: typing.List[dict] = None, **extensions: typing.Any) -> None:
        if errors:
            extensions['upstream_errors'] = errors
        super().__init__(message, **extensions)
        self.errors = errors or []


# Errors that make a schema build impossible; the adapter goes back to
# uninitialized when one of these escapes a build.
STRUCTURAL_ERRORS = (ExtensionSyntaxError, UnknownTypeError, FieldNameConflictError, TemplateNotFoundError)
