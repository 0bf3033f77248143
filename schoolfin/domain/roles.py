from enum import Enum


class BaseRole(str, Enum):
    admin = "admin"
    teacher = "teacher"
    student = "student"
    parent = "parent"
    accountant = "accountant"


class TenantRole(str, Enum):
    super_admin = "super_admin"
    school_admin = "school_admin"
    accountant = "accountant"
