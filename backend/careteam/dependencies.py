"""FastAPI dependencies wiring the services to the request session."""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from careteam.config import settings
from careteam.database import get_db
from careteam.services.care_records import CareTeamService
from careteam.services.directory import ProfessionalDirectory, SqlProfessionalDirectory
from careteam.services.linker import RecordLinker
from careteam.services.notifications import LoggingNotificationDispatcher, NotificationDispatcher
from careteam.services.scheduler import AppointmentScheduler


def get_notifier(request: Request) -> NotificationDispatcher:
    """The dispatcher installed on ``app.state`` at startup."""
    notifier = getattr(request.app.state, "notifier", None)
    return notifier if notifier is not None else LoggingNotificationDispatcher()


def get_directory(db: AsyncSession = Depends(get_db)) -> ProfessionalDirectory:
    return SqlProfessionalDirectory(db)


def get_scheduler(
    db: AsyncSession = Depends(get_db),
    directory: ProfessionalDirectory = Depends(get_directory),
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> AppointmentScheduler:
    return AppointmentScheduler(
        db,
        directory,
        notifier,
        linker=RecordLinker(db, notifier),
        tz=settings.clinic_timezone,
    )


def get_care_team_service(
    db: AsyncSession = Depends(get_db),
    directory: ProfessionalDirectory = Depends(get_directory),
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> CareTeamService:
    return CareTeamService(db, directory, notifier)
