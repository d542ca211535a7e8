"""Derived fields and the compute functions behind them.

A compute function receives the parent object after its fetch template has
been resolved upstream, and returns the value of the derived field::

    registry = ComputeRegistry(templates)

    @registry.derived('Organization', 'countSum', template='repos')
    def count_sum(organization):
        return sum_of(pluck(organization['repos']['nodes'], 'stargazers.totalCount'))

Compute functions are synchronous and must not talk to the upstream API.
"""
import typing
from collections import abc
from dataclasses import dataclass

from .errors import (
    ComputationError,
    ComputeNotFoundError,
    EmptyAggregationError,
    FieldNameConflictError,
    TemplateNotFoundError,
)
from .templates import DataFetchTemplate, TemplateRegistry

ComputeFn = typing.Callable[[typing.Any], typing.Any]


@dataclass(frozen=True)
class ComputeBinding:
    type_name: str
    field_name: str
    compute: ComputeFn
    template: DataFetchTemplate

    def __post_init__(self) -> None:
        if not callable(self.compute):
            raise TypeError(f'Compute function of {self.coordinate} must be callable, got {self.compute!r}.')
        if not isinstance(self.template, DataFetchTemplate):
            raise TypeError(f'Template of {self.coordinate} must be a DataFetchTemplate, got {self.template!r}.')
        if self.template.type_name != self.type_name:
            raise TemplateNotFoundError(
                f'Template {self.template.name!r} is defined on {self.template.type_name}, '
                f'not on {self.type_name}.'
            )

    @property
    def coordinate(self) -> str:
        return f'{self.type_name}.{self.field_name}'

    def __call__(self, parent: typing.Any) -> typing.Any:
        return invoke_compute(self.coordinate, self.compute, parent)


class ReadOnlyMapping(abc.Mapping):
    """A read-only view of a mapping, its children are wrapped as they are read."""

    __slots__ = ('_data',)

    def __init__(self, data: typing.Mapping) -> None:
        self._data = data

    def __getitem__(self, key: typing.Any) -> typing.Any:
        return read_only(self._data[key])

    def __iter__(self) -> typing.Iterator:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({self._data!r})'


class ReadOnlyList(abc.Sequence):
    __slots__ = ('_data',)

    def __init__(self, data: list) -> None:
        self._data = data

    def __getitem__(self, index: typing.Any) -> typing.Any:
        if isinstance(index, slice):
            return ReadOnlyList(self._data[index])
        return read_only(self._data[index])

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({self._data!r})'


def read_only(value: typing.Any) -> typing.Any:
    if isinstance(value, (ReadOnlyMapping, ReadOnlyList)):
        return value
    if isinstance(value, typing.Mapping):
        return ReadOnlyMapping(value)
    if isinstance(value, list):
        return ReadOnlyList(value)
    return value


def invoke_compute(coordinate: str, compute: ComputeFn, parent: typing.Any) -> typing.Any:
    try:
        return compute(read_only(parent))
    except ComputationError:
        raise
    except (KeyError, TypeError) as exc:
        raise ComputationError(
            f'Missing prefetched data for {coordinate}: {exc!r}. '
            'Check that the fetch template selects every path the compute function reads.'
        ) from exc
    except Exception as exc:
        raise ComputationError(f'Failed to compute {coordinate}: {exc}') from exc


class ComputeRegistry:
    _functions: typing.Dict[typing.Tuple[str, str], ComputeFn]

    def __init__(self, templates: TemplateRegistry = None) -> None:
        self.templates = templates if templates is not None else TemplateRegistry()
        self._functions = {}

    def __contains__(self, key: typing.Tuple[str, str]) -> bool:
        return key in self._functions

    def register(self, type_name: str, field_name: str, compute_fn: ComputeFn) -> ComputeFn:
        key = (type_name, field_name)
        if key in self._functions:
            raise FieldNameConflictError(f'Compute function for {type_name}.{field_name} is already registered.')
        if not callable(compute_fn):
            raise TypeError(f'Compute function of {type_name}.{field_name} must be callable.')
        self._functions[key] = compute_fn
        return compute_fn

    def derived(self, type_name: str, field_name: str, template: str) -> typing.Callable[[ComputeFn], ComputeFn]:
        def decorate(func: ComputeFn) -> ComputeFn:
            self.templates.bind(type_name, field_name, template)
            return self.register(type_name, field_name, func)

        return decorate

    def invoke(self, type_name: str, field_name: str, parent_value: typing.Any) -> typing.Any:
        try:
            compute = self._functions[(type_name, field_name)]
        except KeyError:
            raise ComputeNotFoundError(f'No compute function registered for {type_name}.{field_name}.') from None
        return invoke_compute(f'{type_name}.{field_name}', compute, parent_value)

    def bindings(self) -> typing.List[ComputeBinding]:
        return [
            ComputeBinding(
                type_name=type_name,
                field_name=field_name,
                compute=compute,
                template=self.templates.lookup(type_name, field_name),
            )
            for (type_name, field_name), compute in self._functions.items()
        ]


def pluck(items: typing.Iterable[typing.Any], path: str) -> typing.List[typing.Any]:
    """Read ``path`` (dotted) from every item: ``pluck(nodes, 'stargazers.totalCount')``."""
    keys = path.split('.')
    values = []
    for item in items:
        for key in keys:
            item = item[key]
        values.append(item)
    return values


def sum_of(values: typing.Sequence[typing.Any]) -> typing.Any:
    values = list(values)
    if not values:
        raise EmptyAggregationError('Can not sum an empty list.')
    total = values[0]
    for value in values[1:]:
        total = total + value
    return total


def max_of(values: typing.Sequence[typing.Any]) -> typing.Any:
    values = list(values)
    if not values:
        raise EmptyAggregationError('Can not take the maximum of an empty list.')
    return max(values)
