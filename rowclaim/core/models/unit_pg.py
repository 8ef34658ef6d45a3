from __future__ import annotations
from datetime import datetime
from typing import Optional
from sqlalchemy import (
    DateTime,
    Enum as SQLAlchemyEnum,
    ForeignKey,
    Index,
    String,
    Text,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from rowclaim.core.types.status import WorkStatus


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for PostgreSQL models"""

    pass


class UnitModel(Base):
    """
    A thing that may need work (e.g. an account).

    - id: str # identity, owned by an external process
    - last_updated: datetime # advanced by the owning process; never by a claim

    Units are created and deleted by their owner. Deleting one removes its
    work records through the foreign key cascade.
    """

    __tablename__ = 'rowclaim_units'
    __table_args__ = (
        Index('idx_rowclaim_units_last_updated', 'last_updated'),
    )

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text('NOW()'),
    )


class WorkRecordModel(Base):
    """
    Claim-relevant state of one unit for one stage.

    - unit_id: str # FK to rowclaim_units, cascade-deleted
    - kind: str # stage discriminator, e.g. 'initial' / 'incremental'
    - status: WorkStatus # pending (claimed) / completed / failed
    - claimed_at: datetime # last time a claim moved this record to pending
    - updated_at: datetime # last status change

    Created lazily by the first claim of a unit, updated in place by later
    claims, never deleted directly.
    """

    __tablename__ = 'rowclaim_work_records'
    __table_args__ = (
        Index('idx_rowclaim_work_records_kind_status', 'kind', 'status'),
    )

    unit_id: Mapped[str] = mapped_column(
        Text,
        ForeignKey('rowclaim_units.id', ondelete='CASCADE', name='fk_rowclaim_units'),
        primary_key=True,
    )
    kind: Mapped[str] = mapped_column(String(100), primary_key=True)
    status: Mapped[WorkStatus] = mapped_column(
        SQLAlchemyEnum(
            WorkStatus,
            native_enum=False,
            length=20,
            # Store 'pending' rather than the member name 'PENDING'.
            values_callable=lambda members: [m.value for m in members],
        ),
        nullable=False,
    )
    claimed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text('NOW()'),
    )
