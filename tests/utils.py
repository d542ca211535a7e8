import asyncio
import typing

from graphql import build_client_schema, build_schema, graphql, introspection_from_schema

from stitchgql import ComputeRegistry, TemplateRegistry, max_of, pluck, sum_of
from stitchgql.errors import UpstreamIntrospectionError

UPSTREAM_SDL = '''
type Query {
  organization(login: String!): Organization
  owner(login: String!): RepositoryOwner
}

type Mutation {
  renameOrganization(login: String!, name: String!): Organization
}

interface RepositoryOwner {
  login: String!
}

type Organization implements RepositoryOwner {
  login: String!
  name: String
  secret: String
  repositories(first: Int): RepositoryConnection
}

type User implements RepositoryOwner {
  login: String!
  name: String
}

type RepositoryConnection {
  totalCount: Int!
  nodes: [Repository]
}

type Repository {
  name: String!
  stargazers: StargazerConnection!
}

type StargazerConnection {
  totalCount: Int!
}
'''

EXTENSION_SDL = '''
extend type Organization {
  "Sum of stargazers over the first 20 repositories"
  countSum: Int
  "Highest stargazer count among the first 20 repositories"
  countMax: Int
}
'''

REPOS_TEMPLATE = '''
fragment repos on Organization {
  repos: repositories(first: 20) {
    nodes {
      stargazers {
        totalCount
      }
    }
  }
}
'''


def make_repository(name: str, stars: int) -> dict:
    return {'name': name, 'stargazers': {'totalCount': stars}}


def make_owners() -> typing.Dict[str, dict]:
    return {
        'acme': {
            '__typename': 'Organization',
            'login': 'acme',
            'name': 'Acme',
            'repositories': [make_repository('rockets', 3), make_repository('anvils', 7)],
        },
        'empty': {'__typename': 'Organization', 'login': 'empty', 'name': 'Empty', 'repositories': []},
        'ada': {'__typename': 'User', 'login': 'ada', 'name': 'Ada Lovelace'},
    }


def make_upstream_schema(owners: typing.Dict[str, dict]):
    schema = build_schema(UPSTREAM_SDL)

    def resolve_organization(_, info, login):
        owner = owners.get(login)
        return owner if owner and owner['__typename'] == 'Organization' else None

    def resolve_rename(_, info, login, name):
        owners[login]['name'] = name
        return owners[login]

    def resolve_repositories(organization, info, first=None):
        nodes = organization['repositories'][:first]
        return {'totalCount': len(organization['repositories']), 'nodes': nodes}

    def resolve_secret(organization, info):
        raise PermissionError('Must have admin rights to read the secret.')

    schema.query_type.fields['organization'].resolve = resolve_organization
    schema.query_type.fields['owner'].resolve = lambda _, info, login: owners.get(login)
    schema.mutation_type.fields['renameOrganization'].resolve = resolve_rename
    schema.get_type('Organization').fields['repositories'].resolve = resolve_repositories
    schema.get_type('Organization').fields['secret'].resolve = resolve_secret
    return schema


class FakeUpstream:
    """An in-process upstream API, introspected and queried like a remote one."""

    def __init__(self, introspection_failures: int = 0, delay: float = 0) -> None:
        self.owners = make_owners()
        self.schema = make_upstream_schema(self.owners)
        self.introspection_failures = introspection_failures
        self.delay = delay
        self.introspections = 0
        self.requests: typing.List[typing.Tuple[str, dict, typing.Any]] = []

    async def introspect(self):
        self.introspections += 1
        await asyncio.sleep(self.delay)
        if self.introspection_failures:
            self.introspection_failures -= 1
            raise UpstreamIntrospectionError('Upstream is unavailable.')
        return build_client_schema(introspection_from_schema(self.schema))

    async def execute(self, query, variables=None, headers=None):
        self.requests.append((query, variables, headers))
        result = await graphql(self.schema, query, variable_values=variables)
        response = {'data': result.data}
        if result.errors:
            response['errors'] = [error.formatted for error in result.errors]
        return response

    @property
    def queries(self) -> typing.List[str]:
        return [query for query, _, _ in self.requests]


def make_registry() -> ComputeRegistry:
    templates = TemplateRegistry()
    templates.register('Organization', 'repos', REPOS_TEMPLATE)
    registry = ComputeRegistry(templates)

    def stars(organization):
        return pluck(organization['repos']['nodes'], 'stargazers.totalCount')

    registry.derived('Organization', 'countSum', template='repos')(lambda org: sum_of(stars(org)))
    registry.derived('Organization', 'countMax', template='repos')(lambda org: max_of(stars(org)))
    return registry
