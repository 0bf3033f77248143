from enum import Enum


class MpesaTransactionStatus(str, Enum):
    pending = "PENDING"
    success = "SUCCESS"
    failed = "FAILED"


class MpesaReviewReason(str, Enum):
    no_student = "NO_STUDENT"
    multiple_students = "MULTIPLE_STUDENTS"
    no_fees = "NO_FEES"
    other = "OTHER"
