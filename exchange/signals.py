"""
Django signals keeping conversation metadata in step with new messages.
"""

import logging

from django.db.models.signals import post_save
from django.dispatch import receiver

from .models import Message, Thread

logger = logging.getLogger(__name__)


@receiver(post_save, sender=Message)
def touch_thread_on_message(sender, instance, created, **kwargs):
    """
    Move the thread's last_updated to the time of its newest message.

    Runs inside the same database transaction as the message save, so the
    thread and its messages are always in sync. Transaction messages have no
    thread to update.
    """
    if not created or instance.thread_id is None:
        return

    updated = Thread.objects.filter(
        pk=instance.thread_id,
        last_updated__lt=instance.time_sent
    ).update(last_updated=instance.time_sent)

    if updated:
        logger.debug(f"Thread {instance.thread_id} last_updated set to {instance.time_sent}")
