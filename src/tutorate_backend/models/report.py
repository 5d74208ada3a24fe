'''
Read-only aggregates for the admin dashboard and the per-user stats page.
'''
from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel

from ..database.db_enums import ReportRange, UserRole


class RevenuePoint(BaseModel):
    bucket: str # YYYY-MM-DD for daily buckets, YYYY-MM for monthly ones
    total: Decimal
    count: int


class AdminReport(BaseModel):
    range: ReportRange
    start: datetime
    end: datetime
    include_deleted: bool
    accounts_by_role: dict[str, int]
    accounts_by_status: dict[str, int]
    posts_by_status: dict[str, int]
    applications_by_status: dict[str, int]
    revenue_total: Decimal
    payments_count: int
    revenue_series: list[RevenuePoint]
    new_accounts: int
    new_posts: int


class StudentStats(BaseModel):
    role: Literal[UserRole.STUDENT.value] = UserRole.STUDENT.value
    posts_by_status: dict[str, int]
    total_posts: int
    applications_received: int
    total_spent: Decimal
    payments_count: int


class TutorStats(BaseModel):
    role: Literal[UserRole.TUTOR.value] = UserRole.TUTOR.value
    applications_by_status: dict[str, int]
    total_applications: int
    ongoing_tuitions: int
    total_earned: Decimal
    payments_count: int
