"""Security configuration constants for the Orda API.

This module centralizes:
- Sensitive keys that should be sanitized from logs
- Which error response fields each environment may expose
"""

# Keys redacted from structured logs (substring match, case-insensitive)
SENSITIVE_KEYS: set[str] = {
    # Credentials for the model providers and storage
    "api_key",
    "secret",
    "token",
    "password",
    "connection_string",
    "authorization",
    "bearer",
    "cookie",
    "set-cookie",
    "x-api-key",
    # Personal data people may type into a cart
    "email",
    "phone",
    "address",
    "card_number",
}

# In production, error responses only carry these fields
PRODUCTION_ERROR_FIELDS: set[str] = {
    "correlation_id",
    "type",
}

# Development additionally exposes diagnostics
DEVELOPMENT_ERROR_FIELDS: set[str] = PRODUCTION_ERROR_FIELDS | {
    "details",
    "traceback",
    "exception_type",
    "validation_errors",
}


def get_allowed_error_fields(environment: str) -> set[str]:
    """Get allowed error response fields based on environment.

    Args:
        environment: The application environment (production, development, etc.)

    Returns:
        Set of allowed field names for error responses
    """
    if environment == "production":
        return PRODUCTION_ERROR_FIELDS.copy()
    return DEVELOPMENT_ERROR_FIELDS.copy()


def is_sensitive_key(key: str) -> bool:
    """Check if a key should be considered sensitive and redacted."""
    key_lower = key.lower()
    return any(sensitive in key_lower for sensitive in SENSITIVE_KEYS)
