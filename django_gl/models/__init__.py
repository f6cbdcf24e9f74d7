"""
Django GL created on top of the Django Ledger engine.
Copyright© EDMA Group Inc licensed under the GPLv3 Agreement.
"""

from django_gl.models.mixins import *
from django_gl.models.gl_settings import *
from django_gl.models.sequence import *
from django_gl.models.batch import *
from django_gl.models.journal import *
from django_gl.models.entries import *
