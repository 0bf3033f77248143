from enum import Enum


class FeeStatus(str, Enum):
    unpaid = "unpaid"
    partially_paid = "partially_paid"
    paid = "paid"


class Term(str, Enum):
    term1 = "TERM1"
    term2 = "TERM2"
    term3 = "TERM3"


class ApplyScope(str, Enum):
    all = "all"
    term = "term"


class PaymentMethod(str, Enum):
    cash = "CASH"
    bank_transfer = "BANK_TRANSFER"
    pos = "POS"
    online = "ONLINE"
    mpesa = "MPESA"
