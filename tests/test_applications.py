import json

import pytest
from starlette.testclient import TestClient

from stitchgql import ExecutionAdapter, GraphQL
from tests.utils import EXTENSION_SDL, FakeUpstream, make_registry

QUERY = '{ organization(login: "acme") { name countSum } }'


@pytest.fixture
def app(adapter):
    return GraphQL(adapter)


@pytest.fixture
def client(app):
    return TestClient(app)


def test_post_json(client):
    response = client.post('/', json={'query': QUERY})

    assert response.status_code == 200
    assert response.json() == {'data': {'organization': {'name': 'Acme', 'countSum': 10}}, 'errors': None}


def test_post_graphql_body(client):
    response = client.post('/', content=QUERY, headers={'Content-Type': 'application/graphql'})

    assert response.json()['data'] == {'organization': {'name': 'Acme', 'countSum': 10}}


def test_get_with_variables(client):
    params = {
        'query': 'query($login: String!) { organization(login: $login) { countMax } }',
        'variables': json.dumps({'login': 'acme'}),
    }
    response = client.get('/', params=params)

    assert response.json()['data'] == {'organization': {'countMax': 7}}


def test_partial_failure(client):
    response = client.post('/', json={'query': '{ organization(login: "empty") { name countSum } }'})

    body = response.json()
    assert response.status_code == 200
    assert body['data'] == {'organization': {'name': 'Empty', 'countSum': None}}
    assert body['errors'][0]['extensions']['code'] == 'EMPTY_AGGREGATION'
    assert body['errors'][0]['locations'] == [{'line': 1, 'column': 39}]


def test_playground(client):
    response = client.get('/', headers={'Accept': 'text/html'})

    assert response.status_code == 200
    assert response.headers['content-type'].startswith('text/html')


def test_playground_disabled(adapter):
    client = TestClient(GraphQL(adapter, playground=False))

    assert client.get('/', headers={'Accept': 'text/html'}).status_code == 404


def test_bad_requests(client):
    assert client.post('/', content='query', headers={'Content-Type': 'text/plain'}).status_code == 415
    assert client.post('/', json={'variables': {}}).status_code == 400
    assert client.post('/', content='{', headers={'Content-Type': 'application/json'}).status_code == 400
    assert client.put('/', json={'query': QUERY}).status_code == 405


def test_authorization_is_not_forwarded_by_default(client, upstream):
    client.post('/', json={'query': QUERY}, headers={'Authorization': 'bearer abc'})

    assert upstream.requests[0][2] is None


def test_authorization_is_forwarded(adapter, upstream):
    client = TestClient(GraphQL(adapter, forward_authorization=True))
    client.post('/', json={'query': QUERY}, headers={'Authorization': 'bearer abc'})

    assert upstream.requests[0][2] == {'Authorization': 'bearer abc'}


def test_context_builder_and_error_formater(adapter):
    app = GraphQL(
        adapter,
        context_builder=lambda: {'tenant': 'acme'},
        error_formater=lambda error: {'message': error.message.upper()},
    )
    response = TestClient(app).post('/', json={'query': '{ organization(login: "empty") { countSum } }'})

    assert response.json()['errors'] == [{'message': 'CAN NOT SUM AN EMPTY LIST.'}]


def test_debug_includes_traceback(adapter):
    client = TestClient(GraphQL(adapter, debug=True))
    response = client.post('/', json={'query': '{ organization(login: "empty") { countSum } }'})

    [error] = response.json()['errors']
    assert error['extensions']['exception']['traceback']


def test_build_on_startup():
    upstream = FakeUpstream()
    app = GraphQL(upstream=upstream, type_defs=EXTENSION_SDL, bindings=make_registry(), build_on_startup=True)

    with TestClient(app) as client:
        assert app.adapter.composed is not None
        client.post('/', json={'query': QUERY})
    assert upstream.introspections == 1


def test_failed_startup_build_is_retried():
    upstream = FakeUpstream(introspection_failures=1)
    adapter = ExecutionAdapter(upstream, EXTENSION_SDL, make_registry())

    with TestClient(GraphQL(adapter, build_on_startup=True)) as client:
        assert adapter.composed is None
        response = client.post('/', json={'query': QUERY})

    assert response.json()['data'] == {'organization': {'name': 'Acme', 'countSum': 10}}
    assert upstream.introspections == 2


def test_requires_adapter_or_declarations():
    with pytest.raises(Exception):
        GraphQL(upstream=FakeUpstream())
