import os
from uuid import UUID

from celery import Celery
from celery.schedules import crontab
from celery.utils.log import get_task_logger

from .database import SessionLocal
from . import authorization, models, search

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "memory://")
celery_app = Celery("tasks", broker=CELERY_BROKER_URL)
celery_app.conf.task_always_eager = (
    CELERY_BROKER_URL == "memory://" or os.getenv("TESTING") == "1"
)

_logger = get_task_logger(__name__)

# users refreshed per run; the rest stay queued for the next run
AUTH_LOOKUP_BATCH_SIZE = 10


@celery_app.task
def process_auth_lookup_queue() -> int:
    """Recompute cached permissions for queued users, highest priority first."""

    db = SessionLocal()
    try:
        entries = (
            db.query(models.AuthLookupUpdateQueue)
            .order_by(models.AuthLookupUpdateQueue.priority.desc(), models.AuthLookupUpdateQueue.created_at)
            .all()
        )
        user_ids: list[UUID] = []
        for entry in entries:
            if entry.user_id not in user_ids:
                user_ids.append(entry.user_id)
        batch = user_ids[:AUTH_LOOKUP_BATCH_SIZE]
        for user_id in batch:
            user = db.get(models.User, user_id)
            if user is None:
                continue
            written = authorization.refresh_user_lookup(db, user)
            _logger.info("Refreshed %d auth lookup rows for user %s", written, user_id)
        if batch:
            db.query(models.AuthLookupUpdateQueue).filter(
                models.AuthLookupUpdateQueue.user_id.in_(batch)
            ).delete(synchronize_session=False)
        db.commit()
        remaining = len(user_ids) - len(batch)
    finally:
        db.close()
    if remaining:
        enqueue_auth_lookup_update()
    return len(batch)


def enqueue_auth_lookup_update():
    if celery_app.conf.task_always_eager:
        process_auth_lookup_queue()
    else:
        process_auth_lookup_queue.delay()


@celery_app.task
def reindex_records(type_key: str, record_ids: list[str]) -> int:
    stype = search.resolve_type(type_key)
    if stype is None:
        _logger.warning("Rejecting reindex request for unknown type %s", type_key)
        return 0
    db = SessionLocal()
    indexed = 0
    try:
        for record_id in record_ids:
            record = db.get(stype.model, UUID(record_id))
            if record is None:
                _logger.info("%s %s gone before reindexing", stype.singular, record_id)
                continue
            search.index_record(record)
            indexed += 1
    finally:
        db.close()
    return indexed


def enqueue_reindex(type_key: str, record_ids: list):
    ids = [str(i) for i in record_ids]
    if celery_app.conf.task_always_eager:
        reindex_records(type_key, ids)
    else:
        reindex_records.delay(type_key, ids)


@celery_app.task
def reindex_all() -> int:
    db = SessionLocal()
    try:
        total = 0
        for stype in search.SEARCHABLE_TYPES:
            for record in db.query(stype.model).all():
                search.index_record(record)
                total += 1
    finally:
        db.close()
    return total


celery_app.conf.beat_schedule = {
    "auth-lookup-queue": {
        "task": "catalog.tasks.process_auth_lookup_queue",
        "schedule": crontab(minute="*/5"),
    },
    "nightly-reindex": {
        "task": "catalog.tasks.reindex_all",
        "schedule": crontab(hour=2, minute=0),
    },
}
