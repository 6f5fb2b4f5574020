"""Repository layer for data access.

Repositories encapsulate database queries and persistence for domain
objects; services hold the rules.
"""

from careteam.repositories.appointment import AppointmentRepository
from careteam.repositories.care_record import CareRecordRepository

__all__ = ["AppointmentRepository", "CareRecordRepository"]
