from celery import shared_task
from datetime import datetime
import asyncio
import structlog

from app.db.database import create_database
from app.services.invitation_service import InvitationService
from app.services.project_service import ProjectService

logger = structlog.get_logger()


async def _purge_trashed_projects() -> int:
    database = create_database()
    try:
        async with database.transaction() as session:
            return await ProjectService.purge_expired(session)
    finally:
        await database.dispose()


async def _expire_stale_invitations() -> int:
    database = create_database()
    try:
        async with database.transaction() as session:
            return await InvitationService.expire_stale(session)
    finally:
        await database.dispose()


@shared_task(bind=True, max_retries=3, default_retry_delay=300)
def purge_trashed_projects(self):
    """
    Permanently delete projects that stayed in trash past the retention window
    """
    try:
        purged = asyncio.run(_purge_trashed_projects())
    except Exception as e:
        logger.error("Trash purge failed", error=str(e))
        raise self.retry(exc=e)

    return {
        "status": "completed",
        "purged": purged,
        "timestamp": datetime.utcnow().isoformat()
    }


@shared_task
def expire_stale_invitations():
    """
    Mark pending invitations past their expiry as expired
    """
    expired = asyncio.run(_expire_stale_invitations())
    logger.info("Stale invitations expired", expired=expired)
    return {
        "status": "completed",
        "expired": expired,
        "timestamp": datetime.utcnow().isoformat()
    }
