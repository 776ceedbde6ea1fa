from django.apps import AppConfig


class LinkgraphConfig(AppConfig):
    """Configuration for the linkgraph Django app."""

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'linkgraph'
    verbose_name = 'Link graph'
