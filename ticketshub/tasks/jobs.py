from ticketshub.tasks.celery_app import celery
from ticketshub.tasks import worker_jobs

@celery.task(name="ticketshub.tasks.jobs.reconcile_verified_payments")
def reconcile_verified_payments(limit: int = 50):
    return worker_jobs.reconcile_verified_payments(limit=limit)
