'''
Read-only aggregates: the admin report and per-user stats.

Every aggregate is an independent read on its own short-lived session, so
they are fanned out concurrently under a single timeout.
'''
import datetime
from collections import defaultdict
from decimal import Decimal
from typing import Annotated, Any
from uuid import UUID

from fastapi import Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..common.config import settings
from ..common.logger import log
from ..database import models as db_models
from ..database.db_enums import AccountStatus, ReportRange, TuitionStatus, UserRole
from ..database.engine import get_session_factory
from ..database.models import utcnow
from ..database.utils import as_utc, gather_with_timeout
from ..models import report as report_models
from ..models.token import Principal

RANGE_DAYS = {
    ReportRange.WEEK: 7,
    ReportRange.MONTH: 30,
    ReportRange.YEAR: 365,
}

CENTS = Decimal("0.01")


def _money(value: Any) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENTS)


def _bucket_keys(range_: ReportRange, start: datetime.datetime, end: datetime.datetime) -> list[str]:
    """Every bucket in the window, oldest first, so empty periods show as zero."""
    keys = []
    if range_ == ReportRange.YEAR:
        year, month = start.year, start.month
        while (year, month) <= (end.year, end.month):
            keys.append(f"{year:04d}-{month:02d}")
            year, month = (year + 1, 1) if month == 12 else (year, month + 1)
    else:
        day = start.date()
        while day <= end.date():
            keys.append(day.isoformat())
            day += datetime.timedelta(days=1)
    return keys


def _bucket_of(range_: ReportRange, moment: datetime.datetime) -> str:
    if range_ == ReportRange.YEAR:
        return moment.strftime("%Y-%m")
    return moment.date().isoformat()


class ReportService:
    """
    Built on the session factory rather than the request session, since the
    reads run concurrently and an AsyncSession cannot be shared between tasks.
    """
    def __init__(self, session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]):
        self.session_factory = session_factory

    # --- Single reads (one session each) ---

    async def _grouped_count(self, column, *filters) -> dict[str, int]:
        async with self.session_factory() as session:
            stmt = select(column, func.count()).filter(*filters).group_by(column)
            rows = (await session.execute(stmt)).all()
        return {str(key): count for key, count in rows}

    async def _count(self, model, *filters) -> int:
        async with self.session_factory() as session:
            stmt = select(func.count()).select_from(model).filter(*filters)
            return (await session.execute(stmt)).scalar_one()

    async def _payments(self, *filters) -> list[tuple[Decimal, datetime.datetime]]:
        async with self.session_factory() as session:
            stmt = select(db_models.PaymentRecords.amount, db_models.PaymentRecords.created_at).filter(*filters)
            return [(amount, created_at) for amount, created_at in (await session.execute(stmt)).all()]

    async def _payment_totals(self, *filters) -> tuple[Decimal, int]:
        async with self.session_factory() as session:
            stmt = select(
                func.coalesce(func.sum(db_models.PaymentRecords.amount), 0),
                func.count(db_models.PaymentRecords.id),
            ).filter(*filters)
            total, count = (await session.execute(stmt)).one()
        return _money(total), count

    # --- Admin report ---

    async def admin_report(
        self,
        range_: ReportRange = ReportRange.MONTH,
        include_deleted: bool = False,
        now: datetime.datetime | None = None,
    ) -> report_models.AdminReport:
        end = now or utcnow()
        start = end - datetime.timedelta(days=RANGE_DAYS[range_])
        log.info(f"Building admin report for range={range_.value} (include_deleted={include_deleted}).")

        accounts = db_models.Accounts
        posts = db_models.TuitionPosts
        payments = db_models.PaymentRecords
        account_filters = [] if include_deleted else [accounts.status != AccountStatus.DELETED.value]
        post_filters = [] if include_deleted else [posts.status != TuitionStatus.DELETED.value]
        live_posts = select(posts.id).filter(*post_filters).scalar_subquery()
        application_filters = [] if include_deleted else [db_models.Applications.tuition_post_id.in_(live_posts)]
        in_range = [payments.created_at >= start, payments.created_at <= end]

        (
            accounts_by_role,
            accounts_by_status,
            posts_by_status,
            applications_by_status,
            (revenue_total, payments_count),
            payment_rows,
            new_accounts,
            new_posts,
        ) = await gather_with_timeout(
            self._grouped_count(accounts.role, *account_filters),
            self._grouped_count(accounts.status, *account_filters),
            self._grouped_count(posts.status, *post_filters),
            self._grouped_count(db_models.Applications.status, *application_filters),
            self._payment_totals(*in_range),
            self._payments(*in_range),
            self._count(accounts, accounts.created_at >= start, *account_filters),
            self._count(posts, posts.created_at >= start, *post_filters),
            timeout=settings.REPORT_TIMEOUT_SECONDS,
            label="admin report",
        )

        buckets: dict[str, list] = {key: [Decimal("0"), 0] for key in _bucket_keys(range_, start, end)}
        for amount, created_at in payment_rows:
            bucket = buckets.setdefault(_bucket_of(range_, as_utc(created_at)), [Decimal("0"), 0])
            bucket[0] += _money(amount)
            bucket[1] += 1

        return report_models.AdminReport(
            range=range_,
            start=start,
            end=end,
            include_deleted=include_deleted,
            accounts_by_role=accounts_by_role,
            accounts_by_status=accounts_by_status,
            posts_by_status=posts_by_status,
            applications_by_status=applications_by_status,
            revenue_total=revenue_total,
            payments_count=payments_count,
            revenue_series=[
                report_models.RevenuePoint(bucket=key, total=total.quantize(CENTS), count=count)
                for key, (total, count) in sorted(buckets.items())
            ],
            new_accounts=new_accounts,
            new_posts=new_posts,
        )

    # --- Per-user stats ---

    async def user_stats(self, principal: Principal) -> report_models.StudentStats | report_models.TutorStats:
        log.info(f"Building stats for account {principal.account_id} (Role: {principal.role.value}).")
        if principal.role == UserRole.STUDENT:
            return await self._student_stats(principal.account_id)
        return await self._tutor_stats(principal.account_id)

    async def _student_stats(self, student_id: UUID) -> report_models.StudentStats:
        posts = db_models.TuitionPosts
        own_posts = [posts.student_id == student_id, posts.status != TuitionStatus.DELETED.value]
        received = select(posts.id).filter(*own_posts).scalar_subquery()

        posts_by_status, applications_received, (total_spent, payments_count) = await gather_with_timeout(
            self._grouped_count(posts.status, *own_posts),
            self._count(db_models.Applications, db_models.Applications.tuition_post_id.in_(received)),
            self._payment_totals(db_models.PaymentRecords.student_id == student_id),
            timeout=settings.REPORT_TIMEOUT_SECONDS,
            label="student stats",
        )
        return report_models.StudentStats(
            posts_by_status=posts_by_status,
            total_posts=sum(posts_by_status.values()),
            applications_received=applications_received,
            total_spent=total_spent,
            payments_count=payments_count,
        )

    async def _tutor_stats(self, tutor_id: UUID) -> report_models.TutorStats:
        applications_by_status, ongoing_tuitions, (total_earned, payments_count) = await gather_with_timeout(
            self._grouped_count(db_models.Applications.status, db_models.Applications.tutor_id == tutor_id),
            self._count(
                db_models.TuitionPosts,
                db_models.TuitionPosts.tutor_id == tutor_id,
                db_models.TuitionPosts.status == TuitionStatus.ONGOING.value,
            ),
            self._payment_totals(db_models.PaymentRecords.tutor_id == tutor_id),
            timeout=settings.REPORT_TIMEOUT_SECONDS,
            label="tutor stats",
        )
        return report_models.TutorStats(
            applications_by_status=applications_by_status,
            total_applications=sum(applications_by_status.values()),
            ongoing_tuitions=ongoing_tuitions,
            total_earned=total_earned,
            payments_count=payments_count,
        )
