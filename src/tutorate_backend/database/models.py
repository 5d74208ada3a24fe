from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, DateTime, Enum, ForeignKeyConstraint, Index, Integer, JSON, Numeric, PrimaryKeyConstraint, String, Text, UniqueConstraint, Uuid, text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
import datetime
import decimal
import uuid

from .db_enums import UserRole, AccountStatus, TuitionStatus, ApplicationStatus, PaymentStatus

# JSONB on PostgreSQL, plain JSON everywhere else (sqlite test databases)
JSONType = JSON().with_variant(JSONB(), 'postgresql')


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class Base(DeclarativeBase):
    pass


class Accounts(Base):
    """
    Students, tutors and admins share one table; `role` is the discriminator
    and each subclass only owns its own profile columns.
    """
    __tablename__ = 'accounts'
    __table_args__ = (
        PrimaryKeyConstraint('id', name='accounts_pkey'),
        # email is unique among accounts that are not soft-deleted
        Index('accounts_email_active_key', 'email', unique=True,
              postgresql_where=text("status <> 'deleted'"),
              sqlite_where=text("status <> 'deleted'")),
        Index('idx_accounts_role', 'role'),
        Index('idx_accounts_external_id', 'external_id'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    external_id: Mapped[Optional[str]] = mapped_column(String(128))
    email: Mapped[str] = mapped_column(String(255))
    name: Mapped[str] = mapped_column(Text)
    role: Mapped[str] = mapped_column(Enum(*UserRole.get_all_names(), name='user_role'))
    status: Mapped[str] = mapped_column(
        Enum(*AccountStatus.get_all_names(), name='account_status'),
        default=AccountStatus.ACTIVE.value,
        server_default=text("'active'"))
    phone: Mapped[Optional[str]] = mapped_column(Text)
    photo_url: Mapped[Optional[str]] = mapped_column(Text)
    location: Mapped[Optional[str]] = mapped_column(Text)
    bio: Mapped[Optional[str]] = mapped_column(Text)
    whatsapp: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(True), default=utcnow, server_default=func.now())
    updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(True), default=utcnow, onupdate=utcnow, server_default=func.now())
    deleted_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime(True))
    last_login_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime(True))

    __mapper_args__ = {
        'polymorphic_on': 'role',
    }


class Students(Accounts):
    preferred_subjects: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    class_level: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    tuition_posts: Mapped[list['TuitionPosts']] = relationship(
        'TuitionPosts',
        back_populates='student',
        foreign_keys='[TuitionPosts.student_id]'
    )

    __mapper_args__ = {
        'polymorphic_identity': UserRole.STUDENT.value,
    }


class Tutors(Accounts):
    qualifications: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    subjects: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    experience: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    hourly_rate: Mapped[Optional[decimal.Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    availability: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rating: Mapped[Optional[decimal.Decimal]] = mapped_column(Numeric(3, 2), nullable=True)
    total_reviews: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_verified: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)

    applications: Mapped[list['Applications']] = relationship(
        'Applications',
        back_populates='tutor',
        foreign_keys='[Applications.tutor_id]'
    )

    __mapper_args__ = {
        'polymorphic_identity': UserRole.TUTOR.value,
    }


class Admins(Accounts):
    __mapper_args__ = {
        'polymorphic_identity': UserRole.ADMIN.value,
    }


class TuitionPosts(Base):
    __tablename__ = 'tuition_posts'
    __table_args__ = (
        ForeignKeyConstraint(['student_id'], ['accounts.id'], name='tuition_posts_student_id_fkey'),
        ForeignKeyConstraint(['tutor_id'], ['accounts.id'], name='tuition_posts_tutor_id_fkey'),
        PrimaryKeyConstraint('id', name='tuition_posts_pkey'),
        CheckConstraint('applicants >= 0', name='tuition_posts_applicants_non_negative'),
        CheckConstraint('budget_min <= budget_max', name='tuition_posts_budget_range'),
        CheckConstraint('slots >= 1', name='tuition_posts_slots_positive'),
        Index('idx_tuition_posts_student_id', 'student_id'),
        Index('idx_tuition_posts_status', 'status'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    student_name: Mapped[str] = mapped_column(Text)
    student_email: Mapped[str] = mapped_column(String(255))
    title: Mapped[str] = mapped_column(Text)
    subject: Mapped[str] = mapped_column(Text)
    class_level: Mapped[str] = mapped_column(Text)
    description: Mapped[Optional[str]] = mapped_column(Text)
    location: Mapped[Optional[str]] = mapped_column(Text)
    area: Mapped[Optional[str]] = mapped_column(Text)
    mode: Mapped[Optional[str]] = mapped_column(Text)
    budget_min: Mapped[decimal.Decimal] = mapped_column(Numeric(12, 2))
    budget_max: Mapped[decimal.Decimal] = mapped_column(Numeric(12, 2))
    budget_currency: Mapped[str] = mapped_column(String(8))
    schedule: Mapped[Optional[dict]] = mapped_column(JSONType)
    requirements: Mapped[list] = mapped_column(JSONType, default=list)
    qualifications: Mapped[list] = mapped_column(JSONType, default=list)
    responsibilities: Mapped[list] = mapped_column(JSONType, default=list)
    benefits: Mapped[list] = mapped_column(JSONType, default=list)
    slots: Mapped[int] = mapped_column(Integer, default=1, server_default=text('1'))
    application_deadline: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime(True))
    status: Mapped[str] = mapped_column(
        Enum(*TuitionStatus.get_all_names(), name='tuition_status'),
        default=TuitionStatus.PENDING.value,
        server_default=text("'pending'"))
    tutor_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    applicants: Mapped[int] = mapped_column(Integer, default=0, server_default=text('0'))
    views: Mapped[int] = mapped_column(Integer, default=0, server_default=text('0'))
    saved_count: Mapped[int] = mapped_column(Integer, default=0, server_default=text('0'))
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(True), default=utcnow, server_default=func.now())
    updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(True), default=utcnow, onupdate=utcnow, server_default=func.now())
    approved_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime(True))
    assigned_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime(True))
    completed_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime(True))
    deleted_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime(True))

    student: Mapped['Students'] = relationship('Students', back_populates='tuition_posts', foreign_keys=[student_id])
    tutor: Mapped[Optional['Tutors']] = relationship('Tutors', foreign_keys=[tutor_id])
    applications: Mapped[list['Applications']] = relationship('Applications', back_populates='tuition_post')


class Applications(Base):
    __tablename__ = 'applications'
    __table_args__ = (
        ForeignKeyConstraint(['tuition_post_id'], ['tuition_posts.id'], name='applications_tuition_post_id_fkey'),
        ForeignKeyConstraint(['tutor_id'], ['accounts.id'], name='applications_tutor_id_fkey'),
        PrimaryKeyConstraint('id', name='applications_pkey'),
        UniqueConstraint('tuition_post_id', 'tutor_id', name='applications_tuition_post_id_tutor_id_key'),
        Index('idx_applications_tuition_post_id', 'tuition_post_id'),
        Index('idx_applications_tutor_id', 'tutor_id'),
        Index('idx_applications_status', 'status'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tuition_post_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    tutor_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    tutor_name: Mapped[str] = mapped_column(Text)
    tutor_email: Mapped[str] = mapped_column(String(255))
    tutor_photo: Mapped[Optional[str]] = mapped_column(Text)
    qualifications: Mapped[str] = mapped_column(Text)
    experience: Mapped[str] = mapped_column(Text)
    expected_salary: Mapped[decimal.Decimal] = mapped_column(Numeric(12, 2))
    cover_letter: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(
        Enum(*ApplicationStatus.get_all_names(), name='application_status'),
        default=ApplicationStatus.PENDING.value,
        server_default=text("'pending'"))
    applied_at: Mapped[datetime.datetime] = mapped_column(DateTime(True), default=utcnow, server_default=func.now())
    updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(True), default=utcnow, onupdate=utcnow, server_default=func.now())
    decided_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime(True))

    tuition_post: Mapped['TuitionPosts'] = relationship('TuitionPosts', back_populates='applications')
    tutor: Mapped['Tutors'] = relationship('Tutors', back_populates='applications', foreign_keys=[tutor_id])


class PaymentRecords(Base):
    """Append-only ledger. Rows are never updated or deleted."""
    __tablename__ = 'payment_records'
    __table_args__ = (
        ForeignKeyConstraint(['application_id'], ['applications.id'], name='payment_records_application_id_fkey'),
        ForeignKeyConstraint(['tuition_post_id'], ['tuition_posts.id'], name='payment_records_tuition_post_id_fkey'),
        ForeignKeyConstraint(['student_id'], ['accounts.id'], name='payment_records_student_id_fkey'),
        ForeignKeyConstraint(['tutor_id'], ['accounts.id'], name='payment_records_tutor_id_fkey'),
        PrimaryKeyConstraint('id', name='payment_records_pkey'),
        UniqueConstraint('application_id', name='payment_records_application_id_key'),
        UniqueConstraint('tuition_post_id', name='payment_records_tuition_post_id_key'),
        UniqueConstraint('transaction_ref', name='payment_records_transaction_ref_key'),
        Index('idx_payment_records_student_id', 'student_id'),
        Index('idx_payment_records_tutor_id', 'tutor_id'),
        Index('idx_payment_records_created_at', 'created_at'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    application_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    tuition_post_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    tutor_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    amount: Mapped[decimal.Decimal] = mapped_column(Numeric(12, 2))
    currency: Mapped[str] = mapped_column(String(8))
    status: Mapped[str] = mapped_column(
        Enum(*PaymentStatus.get_all_names(), name='payment_status'),
        default=PaymentStatus.COMPLETED.value,
        server_default=text("'completed'"))
    transaction_ref: Mapped[str] = mapped_column(String(255))
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(True), default=utcnow, server_default=func.now())
