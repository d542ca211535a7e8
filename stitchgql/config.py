from starlette.config import Config
from starlette.datastructures import Secret

config = Config('.env')

DEBUG = config('DEBUG', cast=bool, default=False)
PLAYGROUND = config('PLAYGROUND', cast=bool, default=True)
UPSTREAM_URL = config('UPSTREAM_URL', default='https://api.github.com/graphql')
UPSTREAM_TIMEOUT = config('UPSTREAM_TIMEOUT', cast=float, default=30.0)
GITHUB_ACCESS_TOKEN = config('GITHUB_ACCESS_TOKEN', cast=Secret, default='')
