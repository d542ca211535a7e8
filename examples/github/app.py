import uvicorn
from gql import gql

from stitchgql import ComputeRegistry, GraphQL, HTTPUpstream, TemplateRegistry, max_of, pluck, sum_of
from stitchgql import config

type_defs = gql(
    """
  extend type Organization {
    "Sum of stargazers over the first 20 repositories"
    countSum: Int
    "Highest stargazer count among the first 20 repositories"
    countMax: Int
  }
"""
)

templates = TemplateRegistry()
# "repositories" is taken by the upstream field, so the prefetched copy is
# aliased to "repos".
templates.register(
    'Organization',
    'repos',
    """
  fragment repos on Organization {
    repos: repositories(first: 20) {
      nodes {
        stargazers {
          totalCount
        }
      }
    }
  }
""",
)

registry = ComputeRegistry(templates)


def stargazer_counts(organization):
    return pluck(organization['repos']['nodes'], 'stargazers.totalCount')


@registry.derived('Organization', 'countSum', template='repos')
def count_sum(organization):
    return sum_of(stargazer_counts(organization))


@registry.derived('Organization', 'countMax', template='repos')
def count_max(organization):
    return max_of(stargazer_counts(organization))


upstream = HTTPUpstream(
    config.UPSTREAM_URL,
    token=str(config.GITHUB_ACCESS_TOKEN),
    timeout=config.UPSTREAM_TIMEOUT,
)

app = GraphQL(
    upstream=upstream,
    type_defs=type_defs,
    bindings=registry,
    debug=config.DEBUG,
    playground=config.PLAYGROUND,
)

if __name__ == '__main__':
    uvicorn.run(app, port=8080)
