import logging
from celery import Celery

from .config import CELERY_BROKER_URL, CELERY_TASK_ALWAYS_EAGER

logger = logging.getLogger(__name__)

# Celery App Config
celery = Celery(__name__, broker=CELERY_BROKER_URL, backend=CELERY_BROKER_URL)
celery.conf.task_always_eager = CELERY_TASK_ALWAYS_EAGER


@celery.task(name="send_order_email")
def send_order_email(email: str, order_id: int, total_amount: float):
    logger.info("Order #%s confirmation (total %.2f) sent to %s", order_id, total_amount, email)
    return True


@celery.task(name="send_status_email")
def send_status_email(email: str, order_id: int, status: str):
    logger.info("Order #%s is now %s, notified %s", order_id, status, email)
    return True


def dispatch(task, *args):
    """Queue a notification. A broker outage never fails the request that triggered it."""
    try:
        task.delay(*args)
    except Exception:
        logger.warning("Could not queue %s%r", task.name, args, exc_info=True)
