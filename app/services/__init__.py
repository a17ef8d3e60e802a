from .invitations import retry_failed_email, send_mediation_notices, send_poll_invitations
from .notice import (
    create_notice,
    delete_notice,
    get_notice,
    get_notices_for_case,
    get_notices_for_user,
    update_notice,
)
from .poll import (
    create_poll,
    delete_poll,
    finalize_poll,
    get_poll,
    get_poll_results,
    get_polls_for_case,
    get_polls_for_user,
    score_options,
    select_winning_option,
    update_poll,
)
from .stats import compute_stats, get_case_stats, get_stats, refresh_subject_stats
from .tokens import issue_token, validate_token
from .tracking import list_records, mark_opened, mark_voted_via_email, record_email
from .vote import parse_selections, submit_vote

__all__ = [
    # polls
    "create_poll",
    "delete_poll",
    "finalize_poll",
    "get_poll",
    "get_poll_results",
    "get_polls_for_case",
    "get_polls_for_user",
    "score_options",
    "select_winning_option",
    "update_poll",
    # votes
    "parse_selections",
    "submit_vote",
    # notices
    "create_notice",
    "delete_notice",
    "get_notice",
    "get_notices_for_case",
    "get_notices_for_user",
    "update_notice",
    # email pipelines
    "retry_failed_email",
    "send_mediation_notices",
    "send_poll_invitations",
    # tokens
    "issue_token",
    "validate_token",
    # tracking ledger
    "list_records",
    "mark_opened",
    "mark_voted_via_email",
    "record_email",
    # stats
    "compute_stats",
    "get_case_stats",
    "get_stats",
    "refresh_subject_stats",
]
