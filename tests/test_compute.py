import pytest

from stitchgql import (
    ComputationError,
    ComputeBinding,
    ComputeNotFoundError,
    ComputeRegistry,
    EmptyAggregationError,
    FieldNameConflictError,
    TemplateNotFoundError,
    TemplateRegistry,
    max_of,
    pluck,
    sum_of,
)
from stitchgql.compute import ReadOnlyList
from tests.utils import REPOS_TEMPLATE, make_registry

ORGANIZATION = {'repos': {'nodes': [{'stargazers': {'totalCount': 3}}, {'stargazers': {'totalCount': 7}}]}}
EMPTY_ORGANIZATION = {'repos': {'nodes': []}}


def test_sum_and_max():
    registry = make_registry()
    assert registry.invoke('Organization', 'countSum', ORGANIZATION) == 10
    assert registry.invoke('Organization', 'countMax', ORGANIZATION) == 7


@pytest.mark.parametrize('field_name', ['countSum', 'countMax'])
def test_empty_aggregation(field_name):
    registry = make_registry()
    with pytest.raises(EmptyAggregationError) as exc_info:
        registry.invoke('Organization', field_name, EMPTY_ORGANIZATION)
    assert isinstance(exc_info.value, ComputationError)


def test_aggregations():
    assert sum_of([1.5, 2]) == 3.5
    assert max_of((4, 9, 2)) == 9
    with pytest.raises(EmptyAggregationError):
        sum_of([])
    with pytest.raises(EmptyAggregationError):
        max_of([])


def test_pluck():
    assert pluck(ORGANIZATION['repos']['nodes'], 'stargazers.totalCount') == [3, 7]


def test_missing_prefetched_data():
    registry = make_registry()
    with pytest.raises(ComputationError) as exc_info:
        registry.invoke('Organization', 'countSum', {'login': 'acme'})
    assert isinstance(exc_info.value.__cause__, KeyError)


def test_failure_is_wrapped():
    registry = ComputeRegistry()
    registry.register('Organization', 'ratio', lambda org: 1 / org['count'])

    with pytest.raises(ComputationError) as exc_info:
        registry.invoke('Organization', 'ratio', {'count': 0})
    assert isinstance(exc_info.value.__cause__, ZeroDivisionError)


def test_parent_is_read_only():
    def mutate(organization):
        organization['repos'] = None

    registry = ComputeRegistry()
    registry.register('Organization', 'mutate', mutate)
    parent = {'repos': {'nodes': []}}

    with pytest.raises(ComputationError):
        registry.invoke('Organization', 'mutate', parent)
    assert parent == {'repos': {'nodes': []}}


def test_parent_is_wrapped_without_copying():
    views = []

    def first_stars(organization):
        views.append(organization['repos']['nodes'])
        return organization['repos']['nodes'][0]['stargazers']['totalCount']

    registry = ComputeRegistry()
    registry.register('Organization', 'firstStars', first_stars)
    nodes = [{'stargazers': {'totalCount': 3}}]

    assert registry.invoke('Organization', 'firstStars', {'repos': {'nodes': nodes}}) == 3
    [view] = views
    assert isinstance(view, ReadOnlyList)
    nodes.append({'stargazers': {'totalCount': 7}})
    assert len(view) == 2
    assert view[1] == {'stargazers': {'totalCount': 7}}
    with pytest.raises(TypeError):
        view[1]['stargazers'] = None


def test_register_twice():
    registry = ComputeRegistry()
    registry.register('Organization', 'countSum', len)
    with pytest.raises(FieldNameConflictError):
        registry.register('Organization', 'countSum', len)


def test_invoke_unknown_field():
    with pytest.raises(ComputeNotFoundError):
        ComputeRegistry().invoke('Organization', 'countSum', ORGANIZATION)


def test_bindings():
    bindings = make_registry().bindings()

    assert [binding.coordinate for binding in bindings] == ['Organization.countSum', 'Organization.countMax']
    assert {binding.template.name for binding in bindings} == {'repos'}
    assert bindings[0](ORGANIZATION) == 10


def test_bindings_without_template():
    registry = ComputeRegistry()
    registry.register('Organization', 'countSum', len)
    with pytest.raises(TemplateNotFoundError):
        registry.bindings()


def test_binding_validation():
    templates = TemplateRegistry()
    template = templates.register('Organization', 'repos', REPOS_TEMPLATE)

    with pytest.raises(TypeError):
        ComputeBinding('Organization', 'countSum', None, template)
    with pytest.raises(TypeError):
        ComputeBinding('Organization', 'countSum', len, 'repos')
    with pytest.raises(TemplateNotFoundError):
        ComputeBinding('User', 'countSum', len, template)
