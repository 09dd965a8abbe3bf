class PaymentFlowError(Exception):
    """Base class for errors raised by the payment and access services."""


class NotFound(PaymentFlowError):
    pass


class MovieNotFound(NotFound):
    pass


class PaymentNotFound(NotFound):
    pass


class AccessNotFound(NotFound):
    pass


class AlreadyEntitled(PaymentFlowError):
    """The device already holds a live access for the movie."""

    def __init__(self, access):
        super().__init__(f"Device already has active access {access.access_id}")
        self.access = access


class OrderMismatch(PaymentFlowError):
    pass


class InvalidPaymentTransition(PaymentFlowError):
    def __init__(self, current, target):
        super().__init__(f"Cannot move payment from {current} to {target}")
        self.current = current
        self.target = target


class UpstreamGatewayError(PaymentFlowError):
    """Gateway unreachable or rejected the call; safe to retry."""


class AllocationExhausted(PaymentFlowError):
    def __init__(self, sequence: str, attempts: int):
        super().__init__(f"Sequence {sequence!r} exhausted after {attempts} attempts")
        self.sequence = sequence
        self.attempts = attempts
