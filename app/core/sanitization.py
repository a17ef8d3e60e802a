"""Input sanitization utilities."""
import re
from typing import Optional


# Maximum length constraints for security
MAX_TITLE_LENGTH = 200
MAX_TEXT_LENGTH = 5000
MAX_EMAIL_LENGTH = 320
MAX_TOKEN_LENGTH = 100        # Tokens should be ~43 chars for URL-safe base64


def sanitize_text(text: str, max_length: Optional[int] = None, strip_html: bool = True) -> str:
    """
    Sanitize text input to prevent markup injection into outgoing email.

    Email templates autoescape, so this only strips tags and normalizes
    whitespace; it does NOT escape entities (that would double-escape).

    Args:
        text: The input text to sanitize
        max_length: Optional maximum length to enforce
        strip_html: Whether to strip HTML tags (default True)

    Returns:
        Sanitized text with HTML tags removed and whitespace normalized

    Raises:
        ValueError: If text exceeds max_length or contains dangerous patterns
    """
    if not isinstance(text, str):
        raise ValueError("Input must be a string")

    sanitized = text.strip()

    if max_length and len(sanitized) > max_length:
        raise ValueError(f"Input exceeds maximum length of {max_length} characters")

    if strip_html:
        sanitized = re.sub(r'<[^>]*>', '', sanitized)

    # Reject inputs that still contain HTML-like patterns after stripping
    if '<' in sanitized or '>' in sanitized:
        raise ValueError("Input contains invalid HTML-like patterns")

    sanitized = re.sub(r'\s+', ' ', sanitized)

    return sanitized


def sanitize_title(title: str) -> str:
    """Sanitize a poll title; must be non-empty after cleaning."""
    sanitized = sanitize_text(title, max_length=MAX_TITLE_LENGTH)

    if not sanitized:
        raise ValueError("Title cannot be empty")

    return sanitized


def normalize_email(email: str) -> str:
    """
    Normalize a participant email for storage and lookups.

    Emails are compared case-insensitively everywhere (tokens, votes,
    tracking rows), so this is the single place that decides the
    canonical form.

    Raises:
        ValueError: If the value is not a plausible email address
    """
    if not isinstance(email, str):
        raise ValueError("Email must be a string")

    normalized = email.strip().lower()

    if not normalized:
        raise ValueError("Email cannot be empty")

    if len(normalized) > MAX_EMAIL_LENGTH:
        raise ValueError(f"Email exceeds maximum length of {MAX_EMAIL_LENGTH} characters")

    if not re.match(r'^[^@\s]+@[^@\s]+$', normalized):
        raise ValueError("Email format is invalid")

    return normalized


def validate_token_format(token: str) -> str:
    """
    Validate token format before processing.

    Tokens should be URL-safe base64 strings.
    This prevents malformed tokens from causing unnecessary database queries.

    Args:
        token: The token to validate

    Returns:
        The validated token

    Raises:
        ValueError: If token format is invalid
    """
    if not isinstance(token, str):
        raise ValueError("Token must be a string")

    token = token.strip()

    if not token:
        raise ValueError("Token cannot be empty")

    if len(token) > MAX_TOKEN_LENGTH:
        raise ValueError(f"Token exceeds maximum length of {MAX_TOKEN_LENGTH} characters")

    # URL-safe base64 uses: A-Z, a-z, 0-9, -, _
    if not re.match(r'^[A-Za-z0-9_-]+$', token):
        raise ValueError("Token format is invalid (must be URL-safe base64)")

    return token
