from django.apps import AppConfig


class UtilitiesConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.utilities'
    verbose_name = 'Utilities'
