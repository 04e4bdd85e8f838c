import logging

from celery import shared_task
from django.core.management import call_command

log = logging.getLogger(__name__)


@shared_task
def clear_expired_sessions():
    """Drop expired sessions, and with them abandoned carts and upload drafts."""
    log.info("[cart] clearing expired sessions")
    call_command("clearsessions")
    return {"status": "ok"}
