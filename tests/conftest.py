import pytest
from graphql import build_client_schema, introspection_from_schema

from stitchgql import ExecutionAdapter
from tests.utils import EXTENSION_SDL, FakeUpstream, make_registry


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def registry():
    return make_registry()


@pytest.fixture
def upstream_schema(upstream):
    return build_client_schema(introspection_from_schema(upstream.schema))


@pytest.fixture
def adapter(upstream, registry):
    return ExecutionAdapter(upstream, EXTENSION_SDL, registry)
