from enum import Enum


class PaymentStatus(str, Enum):
    created = "created"
    initiated = "initiated"
    success = "success"
    failed = "failed"
    refunded = "refunded"


class MovieStatus(str, Enum):
    draft = "draft"
    published = "published"
    archived = "archived"


# forward-only; refunded is reachable only from success via an admin action
ALLOWED_TRANSITIONS = {
    PaymentStatus.created: [PaymentStatus.initiated, PaymentStatus.success, PaymentStatus.failed],
    PaymentStatus.initiated: [PaymentStatus.success, PaymentStatus.failed],
    PaymentStatus.success: [PaymentStatus.refunded],
    PaymentStatus.failed: [],
    PaymentStatus.refunded: [],
}
