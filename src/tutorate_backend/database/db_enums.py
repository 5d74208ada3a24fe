'''
Static enums mirroring the value sets stored in the database.
'''
import enum

# --- Base Enum Class ---
class ListableEnum(str, enum.Enum):
    """A custom Enum base class that can list all member names."""
    @classmethod
    def get_all_names(cls) -> list[str]:
        return [member.value for member in cls]


class UserRole(ListableEnum):
    STUDENT = 'student'
    TUTOR = 'tutor'
    ADMIN = 'admin'


class AccountStatus(ListableEnum):
    PENDING = 'pending'
    ACTIVE = 'active'
    BLOCKED = 'blocked'
    DELETED = 'deleted'


class TuitionStatus(ListableEnum):
    PENDING = 'pending'
    ACTIVE = 'active'
    REJECTED = 'rejected'
    ONGOING = 'ongoing'
    COMPLETED = 'completed'
    DELETED = 'deleted'

    @classmethod
    def committed(cls) -> list[str]:
        """Statuses reached through payment; the post is locked for its student."""
        return [cls.ONGOING.value, cls.COMPLETED.value]


class ApplicationStatus(ListableEnum):
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'

    @classmethod
    def counted(cls) -> list[str]:
        """Statuses that count towards a tuition post's `applicants` counter."""
        return [cls.PENDING.value, cls.APPROVED.value]


class PaymentStatus(ListableEnum):
    COMPLETED = 'completed'


class ApplicationDecision(ListableEnum):
    APPROVE = 'approve'
    REJECT = 'reject'


class TuitionSortOption(ListableEnum):
    BUDGET_LOW = 'budget-low'
    BUDGET_HIGH = 'budget-high'
    NEWEST = 'newest'
    OLDEST = 'oldest'
    TOP_RATED = 'top-rated'


class ReportRange(ListableEnum):
    WEEK = 'week'
    MONTH = 'month'
    YEAR = 'year'
