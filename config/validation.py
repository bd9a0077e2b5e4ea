# config/validation.py

"""
Startup checks for production environment variables.

Each check appends human-readable problems to a list; ``validate_and_exit``
prints all of them at once and stops the process, so an operator fixes the
whole ``.env`` in one pass instead of one variable per restart.
"""

import os
import sys
from typing import List, Mapping, Optional, Tuple

PLACEHOLDER_SECRETS = frozenset({"your-secret-key", "your_secret_key", "changeme"})

POSITIVE_INT_SETTINGS = (
    "IMPORTER_MAX_RECORDS",
    "IMPORTER_BATCH_SIZE",
    "IMPORTER_HTTP_TIMEOUT_SECONDS",
    "IMPORTER_MAX_UPLOAD_MB",
)


def _check_secrets(env: Mapping[str, str], errors: List[str]) -> None:
    secret_key = env.get("SECRET_KEY", "")
    if not secret_key or secret_key in PLACEHOLDER_SECRETS:
        errors.append(
            "SECRET_KEY must be set to a non-placeholder value "
            '(python -c "import secrets; print(secrets.token_hex(32))").'
        )
    if not env.get("DATABASE_URL"):
        errors.append("DATABASE_URL must point at the production PostgreSQL database.")


def _check_importer(env: Mapping[str, str], errors: List[str]) -> None:
    for name in POSITIVE_INT_SETTINGS:
        raw_value = env.get(name)
        if raw_value is None:
            continue
        try:
            valid = int(raw_value) > 0
        except ValueError:
            valid = False
        if not valid:
            errors.append(f"{name} must be a positive integer, got {raw_value!r}.")

    min_age, max_age = env.get("IMPORTER_MIN_AGE"), env.get("IMPORTER_MAX_AGE")
    if min_age is not None and max_age is not None:
        try:
            if int(min_age) > int(max_age):
                errors.append("IMPORTER_MIN_AGE must not exceed IMPORTER_MAX_AGE.")
        except ValueError:
            errors.append("IMPORTER_MIN_AGE and IMPORTER_MAX_AGE must be integers.")

    base_url = env.get("IMPORTER_API_BASE_URL")
    if base_url:
        if not base_url.startswith(("http://", "https://")):
            errors.append("IMPORTER_API_BASE_URL must be an http(s) URL.")
        elif not env.get("IMPORTER_API_TOKEN"):
            errors.append("IMPORTER_API_TOKEN is required when IMPORTER_API_BASE_URL is set.")


def validate_environment(
    flask_env: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
) -> Tuple[bool, List[str]]:
    """
    Validate environment variables for ``flask_env``.

    Only production is checked; other environments always pass.

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    env = os.environ if env is None else env
    if flask_env is None:
        flask_env = env.get("FLASK_ENV", "development")
    if flask_env != "production":
        return True, []

    errors: List[str] = []
    _check_secrets(env, errors)
    _check_importer(env, errors)
    return not errors, errors


def validate_and_exit(flask_env: Optional[str] = None) -> None:
    """Print every validation problem to stderr and exit with status 1 if any."""
    is_valid, errors = validate_environment(flask_env)
    if is_valid:
        return

    banner = "=" * 80
    print(banner, file=sys.stderr)
    print("PRODUCTION CONFIGURATION IS INCOMPLETE", file=sys.stderr)
    print(banner, file=sys.stderr)
    for number, error in enumerate(errors, 1):
        print(f"{number}. {error}", file=sys.stderr)
    print(banner, file=sys.stderr)
    sys.exit(1)
