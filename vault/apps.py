from django.apps import AppConfig


class VaultConfig(AppConfig):
    name = 'vault'
    default_auto_field = 'django.db.models.BigAutoField'

    def ready(self):
        """Import signals when the app is ready"""
        import vault.signals  # noqa: F401
