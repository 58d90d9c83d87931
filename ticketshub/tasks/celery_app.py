from urllib.parse import urlparse, urlunparse, parse_qs, urlencode

from celery import Celery
from ticketshub.core.config import settings
from ticketshub.core.logger import configure_logging


def _redis_url_for_celery(url: str) -> str:
    """Celery requires ssl_cert_reqs for rediss:// (e.g. Upstash TLS)."""
    if not url or not url.strip().lower().startswith("rediss://"):
        return url
    parsed = urlparse(url)
    qs = parse_qs(parsed.query)
    if "ssl_cert_reqs" not in qs:
        qs["ssl_cert_reqs"] = ["CERT_REQUIRED"]
        return urlunparse(parsed._replace(query=urlencode(qs, doseq=True)))
    return url


configure_logging()
_redis_url = _redis_url_for_celery(settings.REDIS_URL)

celery = Celery(
    "ticketshub",
    broker=_redis_url,
    backend=_redis_url,
    include=["ticketshub.tasks.jobs"],
)

celery.conf.timezone = "Asia/Kolkata"

celery.conf.beat_schedule = {
    "reconcile-verified-payments-every-5-minutes": {
        "task": "ticketshub.tasks.jobs.reconcile_verified_payments",
        "schedule": 300.0,
        "kwargs": {"limit": 50},
    },
}
