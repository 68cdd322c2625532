from sqlalchemy import Column, ForeignKey, Index, Integer, Text, UniqueConstraint, text
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()
metadata = Base.metadata

# Only live reservations take part in the slot uniqueness guarantee
ACTIVE_SLOT_WHERE = "status IN ('pending', 'confirmed')"


class AgentAvailability(Base):
    __tablename__ = 'agent_availability'

    agent_id = Column(Integer, nullable=False, unique=True)
    # {"0": [], "1": [["09:00", "18:00"]], ...}  0 = Sunday, [] = day off
    weekly_schedule = Column(Text, nullable=False, server_default=text("'{}'"))
    default_duration = Column(Integer, nullable=False, server_default=text('60'))
    buffer_time = Column(Integer, nullable=False, server_default=text('15'))
    max_appointments_per_day = Column(Integer, nullable=False, server_default=text('8'))
    advance_booking_days = Column(Integer, nullable=False, server_default=text('60'))
    id = Column(Integer, primary_key=True)
    timezone = Column(Text)
    created_at = Column(Text, server_default=text('CURRENT_TIMESTAMP'))
    updated_at = Column(Text, server_default=text('CURRENT_TIMESTAMP'))

    date_overrides = relationship(
        'DateOverrides',
        back_populates='availability',
        cascade='all, delete-orphan',
        order_by='DateOverrides.date',
    )


class DateOverrides(Base):
    __tablename__ = 'date_overrides'
    __table_args__ = (
        UniqueConstraint('availability_id', 'date'),
    )

    availability_id = Column(ForeignKey('agent_availability.id', ondelete='CASCADE'), nullable=False)
    date = Column(Text, nullable=False)
    is_available = Column(Integer, nullable=False, server_default=text('0'))
    id = Column(Integer, primary_key=True)
    slots = Column(Text)  # NULL = keep the weekly slots for that weekday
    reason = Column(Text)
    created_at = Column(Text, server_default=text('CURRENT_TIMESTAMP'))

    availability = relationship('AgentAvailability', back_populates='date_overrides')


class Appointments(Base):
    __tablename__ = 'appointments'
    __table_args__ = (
        Index('ix_appointments_agent_date', 'agent_id', 'scheduled_date'),
        Index('ix_appointments_client_status', 'client_id', 'status'),
        Index(
            'uq_appointments_active_slot',
            'agent_id', 'scheduled_date', 'scheduled_time',
            unique=True,
            sqlite_where=text(ACTIVE_SLOT_WHERE),
            postgresql_where=text(ACTIVE_SLOT_WHERE),
        ),
    )

    agent_id = Column(Integer, nullable=False)
    appointment_type = Column(Text, nullable=False)
    scheduled_date = Column(Text, nullable=False)  # YYYY-MM-DD, agent local
    scheduled_time = Column(Text, nullable=False)  # HH:MM, agent local
    duration = Column(Integer, nullable=False, server_default=text('60'))
    status = Column(Text, nullable=False, server_default=text("'pending'"))
    contact_name = Column(Text, nullable=False)
    contact_email = Column(Text, nullable=False)
    contact_phone = Column(Text, nullable=False)
    is_guest_booking = Column(Integer, nullable=False, server_default=text('0'))
    is_rescheduled = Column(Integer, nullable=False, server_default=text('0'))
    created_at = Column(Text, nullable=False, server_default=text('CURRENT_TIMESTAMP'))
    updated_at = Column(Text, nullable=False, server_default=text('CURRENT_TIMESTAMP'))
    id = Column(Integer, primary_key=True)
    client_id = Column(Integer)  # NULL for guest bookings
    property_details = Column(Text)  # JSON
    notes = Column(Text)
    agent_notes = Column(Text)
    reschedule_reason = Column(Text)
    original_scheduled_date = Column(Text)
    original_scheduled_time = Column(Text)
    cancellation_reason = Column(Text)
    cancelled_by = Column(Integer)
    cancelled_at = Column(Text)
    responded_at = Column(Text)
    idempotency_key = Column(Text, unique=True)
