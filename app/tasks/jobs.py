from app.tasks.celery_app import celery
from app.tasks import worker_jobs

@celery.task(name="app.tasks.jobs.send_booking_notification", autoretry_for=(ConnectionError,), retry_backoff=True, max_retries=3)
def send_booking_notification(booking_id: str, kind: str):
    return worker_jobs.send_booking_notification(booking_id, kind)


@celery.task(name="app.tasks.jobs.process_email_queue")
def process_email_queue(limit: int = 50):
    return worker_jobs.process_email_queue(limit=limit)
