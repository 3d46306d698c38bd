import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def generate_uuid():
    """Generate a string UUID primary key"""
    return str(uuid.uuid4())


# Status vocabularies shared by services, schemas and tests
MEETING_STATUSES = ("scheduled", "completed", "cancelled", "postponed")
CYCLE_TYPES = ("private", "institutional_fixed", "institutional_per_child")
CYCLE_STATUSES = ("active", "completed", "cancelled")
ACTIVITY_TYPES = ("online", "frontal", "private_lesson")
REGISTRATION_STATUSES = ("registered", "active", "completed", "cancelled", "trial")
# Registrations that count as enrolled students for pricing
ENROLLED_REGISTRATION_STATUSES = ("registered", "active")
USER_ROLES = ("admin", "manager", "instructor")
DAYS_OF_WEEK = ("sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday")


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="instructor")  # admin, manager, instructor
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    instructor = relationship("Instructor", back_populates="user", uselist=False)


class Instructor(Base):
    __tablename__ = "instructors"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), unique=True, nullable=True)
    name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    rate_frontal = Column(Numeric(10, 2), nullable=True)
    rate_online = Column(Numeric(10, 2), nullable=True)
    rate_private = Column(Numeric(10, 2), nullable=True)
    rate_preparation = Column(Numeric(10, 2), nullable=True)
    employment_type = Column(String(20), nullable=False, default="contractor")  # employee, contractor
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="instructor")
    meetings = relationship("Meeting", back_populates="instructor")


class Course(Base):
    __tablename__ = "courses"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    cycles = relationship("Cycle", back_populates="course")


class Student(Base):
    __tablename__ = "students"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    parent_name = Column(String(255), nullable=True)
    parent_phone = Column(String(50), nullable=True)
    parent_email = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    registrations = relationship("Registration", back_populates="student")


class Cycle(Base):
    __tablename__ = "cycles"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    course_id = Column(String(36), ForeignKey("courses.id"), nullable=False, index=True)
    branch_id = Column(String(36), nullable=True, index=True)
    instructor_id = Column(String(36), ForeignKey("instructors.id"), nullable=True, index=True)

    # Pricing mode: private, institutional_fixed, institutional_per_child
    type = Column(String(30), nullable=False, default="private")
    status = Column(String(20), nullable=False, default="active", index=True)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    day_of_week = Column(String(10), nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=60)

    total_meetings = Column(Integer, nullable=False, default=0)
    completed_meetings = Column(Integer, nullable=False, default=0)
    remaining_meetings = Column(Integer, nullable=False, default=0)

    price_per_student = Column(Numeric(10, 2), nullable=True)
    meeting_revenue = Column(Numeric(10, 2), nullable=True)
    student_count = Column(Integer, nullable=True)
    max_students = Column(Integer, nullable=True)

    is_online = Column(Boolean, default=False, nullable=False)
    activity_type = Column(String(20), nullable=True)  # online, frontal, private_lesson

    # Recurring room shared by all meetings of an online cycle
    zoom_meeting_id = Column(String(50), nullable=True)
    zoom_join_url = Column(String(500), nullable=True)
    zoom_host_id = Column(String(100), nullable=True)

    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True, index=True)
    deleted_by = Column(String(36), nullable=True)

    course = relationship("Course", back_populates="cycles")
    instructor = relationship("Instructor")
    meetings = relationship("Meeting", back_populates="cycle", order_by="Meeting.scheduled_date")
    registrations = relationship("Registration", back_populates="cycle")


class Registration(Base):
    __tablename__ = "registrations"
    __table_args__ = (UniqueConstraint("student_id", "cycle_id", name="uq_registration_student_cycle"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    student_id = Column(String(36), ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    cycle_id = Column(String(36), ForeignKey("cycles.id", ondelete="CASCADE"), nullable=False, index=True)
    registration_date = Column(Date, server_default=func.current_date())
    status = Column(String(20), nullable=False, default="registered")
    amount = Column(Numeric(10, 2), nullable=True)
    payment_status = Column(String(20), nullable=True)  # unpaid, partial, paid
    cancellation_date = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    student = relationship("Student", back_populates="registrations")
    cycle = relationship("Cycle", back_populates="registrations")
    attendance = relationship("Attendance", back_populates="registration", cascade="all, delete-orphan")


class Meeting(Base):
    __tablename__ = "meetings"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    cycle_id = Column(String(36), ForeignKey("cycles.id", ondelete="CASCADE"), nullable=False, index=True)
    instructor_id = Column(String(36), ForeignKey("instructors.id"), nullable=True, index=True)

    scheduled_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    status = Column(String(20), nullable=False, default="scheduled", index=True)
    status_updated_at = Column(DateTime(timezone=True), nullable=True)
    status_updated_by = Column(String(36), nullable=True)
    activity_type = Column(String(20), nullable=True)

    # Computed on completion
    revenue = Column(Numeric(10, 2), nullable=False, default=0)
    instructor_payment = Column(Numeric(10, 2), nullable=False, default=0)
    profit = Column(Numeric(10, 2), nullable=False, default=0)

    topic = Column(String(500), nullable=True)
    notes = Column(Text, nullable=True)

    zoom_meeting_id = Column(String(50), nullable=True)
    zoom_join_url = Column(String(500), nullable=True)
    zoom_start_url = Column(Text, nullable=True)
    zoom_password = Column(String(50), nullable=True)
    zoom_host_key = Column(String(20), nullable=True)
    zoom_host_id = Column(String(100), nullable=True)

    # Postponement provenance
    replacement_for_id = Column(String(36), ForeignKey("meetings.id"), nullable=True)
    rescheduled_to_id = Column(String(36), ForeignKey("meetings.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True, index=True)
    deleted_by = Column(String(36), nullable=True)

    cycle = relationship("Cycle", back_populates="meetings")
    instructor = relationship("Instructor", back_populates="meetings")
    attendance = relationship("Attendance", back_populates="meeting", cascade="all, delete-orphan")
    change_requests = relationship("MeetingChangeRequest", back_populates="meeting")


class Attendance(Base):
    __tablename__ = "attendance"
    __table_args__ = (UniqueConstraint("meeting_id", "registration_id", name="uq_attendance_meeting_registration"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    meeting_id = Column(String(36), ForeignKey("meetings.id", ondelete="CASCADE"), nullable=False, index=True)
    registration_id = Column(
        String(36), ForeignKey("registrations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status = Column(String(10), nullable=False)  # present, absent, late
    notes = Column(Text, nullable=True)
    recorded_at = Column(DateTime(timezone=True), server_default=func.now())
    recorded_by = Column(String(36), ForeignKey("users.id"), nullable=False)

    meeting = relationship("Meeting", back_populates="attendance")
    registration = relationship("Registration", back_populates="attendance")


class MeetingChangeRequest(Base):
    __tablename__ = "meeting_change_requests"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    meeting_id = Column(String(36), ForeignKey("meetings.id", ondelete="CASCADE"), nullable=False, index=True)
    instructor_id = Column(String(36), ForeignKey("instructors.id"), nullable=False, index=True)
    request_type = Column(String(20), nullable=False)  # cancel, postpone, replacement
    reason = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="pending", index=True)  # pending, approved, rejected
    reviewed_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    review_notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    meeting = relationship("Meeting", back_populates="change_requests")
    instructor = relationship("Instructor")


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), nullable=True, index=True)
    user_name = Column(String(255), nullable=True)
    action = Column(String(10), nullable=False)  # CREATE, UPDATE, DELETE
    entity = Column(String(50), nullable=False, index=True)
    entity_id = Column(String(36), nullable=False, index=True)
    old_value = Column(JSON, nullable=True)
    new_value = Column(JSON, nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
