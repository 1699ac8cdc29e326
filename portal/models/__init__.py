# Import models here so Alembic can discover them via metadata
from .base import Base  # noqa: F401
from .application import Application  # noqa: F401
from .interview_booking import InterviewBooking  # noqa: F401
from .payment_attempt import PaymentAttempt  # noqa: F401
