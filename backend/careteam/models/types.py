"""Column types shared across models.

Enums persist their values (``"no-show"``), not member names, so partial
index predicates and raw SQL can use the same strings as the API.
"""

import enum

from sqlalchemy import JSON, Enum
from sqlalchemy.dialects.postgresql import JSONB


def enum_type(enum_cls: type[enum.Enum], name: str) -> Enum:
    """Build a SQLAlchemy Enum that stores member values."""
    return Enum(
        enum_cls,
        name=name,
        create_constraint=True,
        validate_strings=True,
        values_callable=lambda members: [member.value for member in members],
    )


# JSONB on PostgreSQL, plain JSON elsewhere; None is stored as SQL NULL
JSONType = JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql")
