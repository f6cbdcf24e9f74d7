"""
Django GL created on top of the Django Ledger engine.
Copyright© EDMA Group Inc licensed under the GPLv3 Agreement.

This module implements the different model MixIns used on different Django GL Models to implement common
functionality.
"""
import logging
from typing import List, Optional

from django.conf import settings
from django.db import models
from django.utils.timezone import localtime
from django.utils.translation import gettext_lazy as _

from django_gl.exceptions import ConcurrencyConflictError
from django_gl.settings import DJANGO_GL_LOGGER_NAME


class CreateUpdateMixIn(models.Model):
    """
    Implements a created and an updated field to a base Django Model.

    Attributes
    ----------
    created: datetime
        A created timestamp. Defaults to now().
    updated: str
        An updated timestamp used to identify when models are updated.
    """
    created = models.DateTimeField(auto_now_add=True)
    updated = models.DateTimeField(auto_now=True, null=True, blank=True)

    class Meta:
        abstract = True


class OptimisticLockMixIn(models.Model):
    """
    Implements a version counter used to detect concurrent writers on the same record.
    Every state change goes through save_versioned(), which only writes if the row still carries the version
    this instance was loaded with.

    Attributes
    ----------
    version: int
        Incremented by one on every versioned write.
    """
    version = models.PositiveIntegerField(default=1, editable=False, verbose_name=_('Version'))

    class Meta:
        abstract = True

    def is_version_current(self, version: int) -> bool:
        return self.version == version

    def check_version(self, current_version: int):
        if not self.is_version_current(current_version):
            raise ConcurrencyConflictError(
                message=_(f'{self.__class__.__name__} {self.pk} was modified by another user '
                          f'(loaded version {self.version}, current version {current_version}). '
                          'Reload and try again.'),
                code='stale_version'
            )

    def save_versioned(self, update_fields: List[str], expected_version: Optional[int] = None):
        """
        Writes the given fields with a single conditional UPDATE on the primary key and expected version.

        Parameters
        ----------
        update_fields: list
            Names of the fields to persist.
        expected_version: int
            The version the row must currently have. Defaults to the instance version.

        Raises
        ------
        ConcurrencyConflictError
            If the row version does not match, meaning another writer got there first.
        """
        if expected_version is None:
            expected_version = self.version

        values = dict()
        for field_name in update_fields:
            attname = self._meta.get_field(field_name).attname
            values[attname] = getattr(self, attname)

        values['version'] = expected_version + 1
        if hasattr(self, 'updated'):
            self.updated = localtime()
            values['updated'] = self.updated

        rows = self.__class__._default_manager.filter(
            pk=self.pk,
            version=expected_version
        ).update(**values)

        if not rows:
            raise ConcurrencyConflictError(
                message=_(f'{self.__class__.__name__} {self.pk} was modified by another user. Reload and try again.'),
                code='stale_version'
            )
        self.version = expected_version + 1


class LoggingMixIn:
    """
    Implements functionality used to add logging capabilities to any python class.
    Useful for production and or testing environments.
    """
    LOGGER_NAME_ATTRIBUTE = None
    LOGGER_BYPASS_DEBUG = False

    def get_logger_name(self):
        if self.LOGGER_NAME_ATTRIBUTE is None:
            return DJANGO_GL_LOGGER_NAME
        return getattr(self, self.LOGGER_NAME_ATTRIBUTE)

    def get_logger(self) -> logging.Logger:
        name = self.get_logger_name()
        return logging.getLogger(name)

    def send_log(self, msg, level=logging.INFO, force: bool = False):
        if self.LOGGER_BYPASS_DEBUG or settings.DEBUG or force:
            logger = self.get_logger()
            logger.log(msg=msg, level=level)
