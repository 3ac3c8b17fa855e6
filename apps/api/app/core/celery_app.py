from typing import Any

from celery import Celery

from app.core.config import get_settings

settings = get_settings()

celery_app = Celery("fieldserve_api", broker=settings.redis_url, backend=settings.redis_url)


@celery_app.task(name="app.tasks.record_activity")
def record_activity(payload: dict[str, Any]) -> str:
    from app.core.database import SessionLocal
    from app.services.audit import write_activity

    with SessionLocal() as session:
        event = write_activity(session, payload)
        return str(event.id)
