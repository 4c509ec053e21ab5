"""Core Django settings.

The file store keeps all state on the filesystem, so no database and no
contrib apps are configured.
"""

from server.settings.components import config

SECRET_KEY = config('DJANGO_SECRET_KEY', default='insecure-development-key')

DEBUG = config('DJANGO_DEBUG', cast=bool, default=False)

ALLOWED_HOSTS: list[str] = []

INSTALLED_APPS = [
    'server.apps.files',
]

DATABASES: dict[str, dict[str, str]] = {}

LANGUAGE_CODE = 'en-us'

TIME_ZONE = config('DJANGO_TIME_ZONE', default='America/New_York')

USE_I18N = False

USE_TZ = True
