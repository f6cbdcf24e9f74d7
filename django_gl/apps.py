"""
Django GL created on top of the Django Ledger engine.
Copyright© EDMA Group Inc licensed under the GPLv3 Agreement.
"""
from django.apps import AppConfig
from django.utils.translation import gettext_lazy as _


class DjangoGLConfig(AppConfig):
    name = 'django_gl'
    label = 'django_gl'
    verbose_name = _('Django GL Journal & Batch Posting')
    default_auto_field = 'django.db.models.BigAutoField'
