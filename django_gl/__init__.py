"""
Django GL created on top of the Django Ledger engine.
Copyright© EDMA Group Inc licensed under the GPLv3 Agreement.
"""

"""Django GL"""
__version__ = '0.1.0'
__license__ = 'GPLv3 License'

__author__ = 'Django GL Contributors'
