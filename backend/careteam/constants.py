"""Shared constants."""

from datetime import timedelta

# Pagination defaults
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100

# Two bookings for the same professional closer than this collide.
SLOT_CONFLICT_WINDOW = timedelta(minutes=30)

# Width of the bucket backing the slot uniqueness index, in seconds.
SLOT_BUCKET_SECONDS = 30 * 60

DEFAULT_SESSION_MINUTES = 60

MAX_SPECIALIZATION_LENGTH = 100
MAX_CANCELLATION_REASON_LENGTH = 500
