import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./festbook.db")

# Frontend base URL used in notification links
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# Booking policy
# Hours the customer has to pay the prepayment after the performer confirms
PAYMENT_DEADLINE_HOURS = int(os.getenv("PAYMENT_DEADLINE_HOURS", "2"))
# Platform commission, collected from the customer as prepayment
COMMISSION_RATE_PERCENT = int(os.getenv("COMMISSION_RATE_PERCENT", "20"))
MAX_PROPOSALS_PER_BOOKING = int(os.getenv("MAX_PROPOSALS_PER_BOOKING", "5"))
# Booking dates and times are entered in the marketplace's local time
MARKETPLACE_TIMEZONE = os.getenv("MARKETPLACE_TIMEZONE", "Europe/Moscow")

# Notification queue
NOTIFICATION_BATCH_SIZE = int(os.getenv("NOTIFICATION_BATCH_SIZE", "50"))
# A claimed row that was never marked sent becomes claimable again after this
NOTIFICATION_CLAIM_TIMEOUT_SECONDS = int(os.getenv("NOTIFICATION_CLAIM_TIMEOUT_SECONDS", "600"))

# Delivery collaborator (push/email/SMS gateway). Unset = log only.
DELIVERY_WEBHOOK_URL = os.getenv("DELIVERY_WEBHOOK_URL")
DELIVERY_WEBHOOK_TOKEN = os.getenv("DELIVERY_WEBHOOK_TOKEN")
DELIVERY_TIMEOUT_SECONDS = float(os.getenv("DELIVERY_TIMEOUT_SECONDS", "10"))

# Shared secret sent by the payment gateway glue on the payment callback
PAYMENT_WEBHOOK_SECRET = os.getenv("PAYMENT_WEBHOOK_SECRET")
if not PAYMENT_WEBHOOK_SECRET:
    import warnings

    warnings.warn(
        "PAYMENT_WEBHOOK_SECRET not set! Payment callbacks will be rejected",
        RuntimeWarning,
        stacklevel=2,
    )
