"""Application constants.

This module contains magic strings and numbers used throughout the application.
Centralizing these values makes them easier to maintain and modify.
"""

# Poll lifecycle
POLL_STATUS_DRAFT = "draft"
POLL_STATUS_ACTIVE = "active"
POLL_STATUS_FINALIZED = "finalized"
POLL_STATUSES = (POLL_STATUS_DRAFT, POLL_STATUS_ACTIVE, POLL_STATUS_FINALIZED)

# Notice lifecycle
NOTICE_STATUS_DRAFT = "draft"
NOTICE_STATUS_SENT = "sent"
NOTICE_STATUS_FAILED = "failed"

NOTICE_TYPES = ("scheduled", "rescheduled", "cancelled", "reminder")

# Vote types, in the order they are shown on the voting form
VOTE_YES = "yes"
VOTE_IF_NEED_BE = "if_need_be"
VOTE_NO = "no"
VOTE_TYPES = (VOTE_YES, VOTE_IF_NEED_BE, VOTE_NO)

# Finalization scoring weights
VOTE_SCORES = {VOTE_YES: 2, VOTE_IF_NEED_BE: 1, VOTE_NO: 0}

# Form field prefix for per-option selections ("vote_<optionId>")
VOTE_FIELD_PREFIX = "vote_"

# Email tracking
EMAIL_TYPE_POLL_INVITATION = "poll_invitation"
EMAIL_TYPE_MEDIATION_NOTICE = "mediation_notice"
EMAIL_TYPES = (EMAIL_TYPE_POLL_INVITATION, EMAIL_TYPE_MEDIATION_NOTICE)

EMAIL_STATUS_SENT = "sent"
EMAIL_STATUS_FAILED = "failed"
EMAIL_STATUS_OPENED = "opened"

# Voting tokens expire passively after this many days
VOTING_TOKEN_TTL_DAYS = 30

# Delivery engine retry policy
EMAIL_MAX_ATTEMPTS = 3
EMAIL_RETRY_BASE_DELAY_SECONDS = 1.0

# Manual retries allowed per failed ledger entry
MAX_MANUAL_RETRIES = 3

# 1x1 transparent PNG served by the open-tracking endpoint
TRACKING_PIXEL_BASE64 = (
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)

# JWT Token Configuration
# Token expiration time in minutes (8 hours)
ACCESS_TOKEN_EXPIRE_MINUTES = 480
