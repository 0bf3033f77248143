"""
Permission catalog.

Capability tokens are namespaced ``resource.action``. Each base role maps to a frozen
set of tokens; the table is built once at import and exposed read-only.
"""
from collections.abc import Iterable
from enum import Enum
from types import MappingProxyType

from schoolfin.domain.roles import BaseRole

CATALOG_VERSION = "2024.1"


class Permission(str, Enum):
    students_read = "students.read"
    students_write = "students.write"
    teachers_read = "teachers.read"
    teachers_write = "teachers.write"
    parents_read = "parents.read"
    parents_write = "parents.write"
    subjects_read = "subjects.read"
    subjects_write = "subjects.write"
    classes_read = "classes.read"
    classes_write = "classes.write"
    lessons_read = "lessons.read"
    lessons_write = "lessons.write"
    exams_read = "exams.read"
    exams_write = "exams.write"
    assignments_read = "assignments.read"
    assignments_write = "assignments.write"
    events_read = "events.read"
    events_write = "events.write"
    results_read = "results.read"
    results_write = "results.write"
    attendance_read = "attendance.read"
    attendance_write = "attendance.write"
    reports_view_admin = "reports.view_admin"
    announcements_read = "announcements.read"
    announcements_write = "announcements.write"
    fees_read = "fees.read"
    fees_write = "fees.write"
    payments_read = "payments.read"
    payments_write = "payments.write"
    expenses_read = "expenses.read"
    expenses_write = "expenses.write"
    payroll_read = "payroll.read"
    payroll_write = "payroll.write"
    budget_read = "budget.read"
    budget_write = "budget.write"
    messages_read = "messages.read"
    messages_send = "messages.send"
    settings_write = "settings.write"


PermissionSet = frozenset[Permission]

_ROLE_PERMISSIONS: dict[BaseRole, PermissionSet] = {
    BaseRole.admin: frozenset(Permission),
    BaseRole.teacher: frozenset(
        {
            Permission.students_read,
            Permission.subjects_read,
            Permission.classes_read,
            Permission.lessons_read,
            Permission.lessons_write,
            Permission.exams_read,
            Permission.exams_write,
            Permission.assignments_read,
            Permission.assignments_write,
            Permission.results_read,
            Permission.results_write,
            Permission.attendance_read,
            Permission.attendance_write,
            Permission.announcements_read,
            Permission.messages_read,
            Permission.messages_send,
        }
    ),
    BaseRole.student: frozenset(
        {
            Permission.subjects_read,
            Permission.classes_read,
            Permission.lessons_read,
            Permission.exams_read,
            Permission.assignments_read,
            Permission.events_read,
            Permission.results_read,
            Permission.attendance_read,
            Permission.announcements_read,
            Permission.messages_read,
        }
    ),
    BaseRole.parent: frozenset(
        {
            Permission.students_read,
            Permission.subjects_read,
            Permission.classes_read,
            Permission.lessons_read,
            Permission.exams_read,
            Permission.assignments_read,
            Permission.results_read,
            Permission.attendance_read,
            Permission.announcements_read,
        }
    ),
    BaseRole.accountant: frozenset(
        {
            Permission.fees_read,
            Permission.fees_write,
            Permission.payments_read,
            Permission.payments_write,
            Permission.expenses_read,
            Permission.expenses_write,
            Permission.payroll_read,
            Permission.payroll_write,
            Permission.budget_read,
            Permission.budget_write,
            Permission.messages_read,
        }
    ),
}

_missing_roles = set(BaseRole) - set(_ROLE_PERMISSIONS)
if _missing_roles:
    raise RuntimeError(f"Permission catalog has no entry for roles: {sorted(role.value for role in _missing_roles)}")

ROLE_PERMISSIONS = MappingProxyType(_ROLE_PERMISSIONS)


def permissions_for_role(role: BaseRole) -> PermissionSet:
    return ROLE_PERMISSIONS[BaseRole(role)]


def normalize_required(required: Permission | str | Iterable[Permission | str]) -> frozenset[Permission]:
    if isinstance(required, (Permission, str)):
        return frozenset({Permission(required)})
    return frozenset(Permission(token) for token in required)


def has_permission(granted: Iterable[Permission], required: Permission | str | Iterable[Permission | str]) -> bool:
    return normalize_required(required) <= frozenset(granted)
