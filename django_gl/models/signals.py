"""
Django GL created on top of the Django Ledger engine.
Copyright© EDMA Group Inc licensed under the GPLv3 Agreement.

The signals module is the notification sink of the posting engine. Listeners (UI toasts, audit feeds) receive
an event after every terminal posting outcome. Delivery is best effort: a failing receiver is logged and never
affects the posting that triggered it.

Every signal is sent with the following keyword arguments: instance, tenant_id, summary.
posting_failed additionally carries the error.
"""
from django.dispatch import Signal

from django_gl.settings import logger

journal_posted = Signal()
batch_posted = Signal()
posting_failed = Signal()


def send_notification(signal: Signal, sender, **kwargs):
    responses = signal.send_robust(sender=sender, **kwargs)
    for receiver, response in responses:
        if isinstance(response, Exception):
            logger.warning(f'Notification receiver {receiver} failed: {response!r}')
    return responses
