from .adapter import ExecutionAdapter, State
from .applications import GraphQL
from .compute import ComputeBinding, ComputeRegistry, max_of, pluck, sum_of
from .errors import (
    ComputationError,
    ComputeNotFoundError,
    EmptyAggregationError,
    ExtensionSyntaxError,
    FieldNameConflictError,
    StitchError,
    TemplateNotFoundError,
    UnknownTypeError,
    UpstreamError,
    UpstreamExecutionError,
    UpstreamIntrospectionError,
)
from .extensions import TypeExtension, load_extensions, print_extensions
from .merge import ComposedSchema, merge
from .templates import DataFetchTemplate, TemplateRegistry
from .upstream import HTTPUpstream, Upstream

__version__ = '0.1.0'

__all__ = [
    'ComposedSchema',
    'ComputationError',
    'ComputeBinding',
    'ComputeNotFoundError',
    'ComputeRegistry',
    'DataFetchTemplate',
    'EmptyAggregationError',
    'ExecutionAdapter',
    'ExtensionSyntaxError',
    'FieldNameConflictError',
    'GraphQL',
    'HTTPUpstream',
    'State',
    'StitchError',
    'TemplateNotFoundError',
    'TemplateRegistry',
    'TypeExtension',
    'UnknownTypeError',
    'Upstream',
    'UpstreamError',
    'UpstreamExecutionError',
    'UpstreamIntrospectionError',
    'load_extensions',
    'max_of',
    'merge',
    'pluck',
    'print_extensions',
    'sum_of',
]
