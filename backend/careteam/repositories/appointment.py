"""Appointment repository."""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from datetime import date, datetime, timedelta

from sqlalchemy import Select, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from careteam.constants import SLOT_CONFLICT_WINDOW
from careteam.errors import NotFoundError
from careteam.models.appointment import Appointment, AppointmentStatus, ConsultationType

# Statuses that hold a slot
ACTIVE_STATUSES = (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED)


class AppointmentRepository:
    """Repository for appointment lookups and conflict queries."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, appointment_id: uuid.UUID) -> Appointment | None:
        result = await self.db.execute(select(Appointment).where(Appointment.id == appointment_id))
        return result.scalar_one_or_none()

    async def get_or_raise(self, appointment_id: uuid.UUID) -> Appointment:
        """Get an appointment by ID.

        Raises:
            NotFoundError: If the appointment does not exist.
        """
        appointment = await self.get_by_id(appointment_id)
        if appointment is None:
            raise NotFoundError(f"Appointment {appointment_id} not found")
        return appointment

    async def find_conflict(
        self,
        professional_id: str,
        scheduled_at: datetime,
        *,
        window: timedelta = SLOT_CONFLICT_WINDOW,
        exclude_id: uuid.UUID | None = None,
    ) -> Appointment | None:
        """First pending/confirmed appointment within ±window of ``scheduled_at``.

        Both window edges are inclusive.
        """
        query = select(Appointment).where(
            Appointment.professional_id == str(professional_id),
            Appointment.status.in_(ACTIVE_STATUSES),
            Appointment.scheduled_at >= scheduled_at - window,
            Appointment.scheduled_at <= scheduled_at + window,
        )
        if exclude_id is not None:
            query = query.where(Appointment.id != exclude_id)

        result = await self.db.execute(query.order_by(Appointment.scheduled_at).limit(1))
        return result.scalar_one_or_none()

    def _filtered_query(
        self,
        *,
        professional_id: str | None = None,
        patient_id: str | None = None,
        dependent_ids: Sequence[uuid.UUID] = (),
        statuses: Sequence[AppointmentStatus] = (),
        consultation_type: ConsultationType | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> Select[tuple[Appointment]]:
        query = select(Appointment)

        if professional_id is not None:
            query = query.where(Appointment.professional_id == str(professional_id))

        # A guardian sees their own bookings and any booking for their dependents
        if patient_id is not None and dependent_ids:
            query = query.where(
                or_(
                    Appointment.patient_id == str(patient_id),
                    Appointment.dependent_id.in_(list(dependent_ids)),
                )
            )
        elif patient_id is not None:
            query = query.where(Appointment.patient_id == str(patient_id))

        if statuses:
            query = query.where(Appointment.status.in_(list(statuses)))
        if consultation_type is not None:
            query = query.where(Appointment.consultation_type == consultation_type)
        if start_date is not None:
            query = query.where(Appointment.appointment_date >= start_date)
        if end_date is not None:
            query = query.where(Appointment.appointment_date <= end_date)
        return query

    async def list(
        self,
        *,
        skip: int = 0,
        limit: int = 50,
        **filters,
    ) -> tuple[list[Appointment], int]:
        """Filtered, paginated appointments ordered by start time.

        Returns:
            Tuple of (page of appointments, total matching count).
        """
        query = self._filtered_query(**filters)

        count_query = select(func.count()).select_from(query.subquery())
        total_result = await self.db.execute(count_query)
        total = total_result.scalar() or 0

        result = await self.db.execute(
            query.order_by(Appointment.scheduled_at).offset(skip).limit(limit)
        )
        return list(result.scalars().all()), total
