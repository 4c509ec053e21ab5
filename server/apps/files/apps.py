"""Django app configuration for files app."""

from django.apps import AppConfig


class FilesConfig(AppConfig):
    """Configuration for files app."""

    name = 'server.apps.files'
    verbose_name = 'Files'
