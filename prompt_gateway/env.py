"""Environment validation helpers for the prompt gateway."""

from __future__ import annotations

import os
from typing import Dict, List

DEFAULT_SECRET = "dev-secret-change-me"

REQUIRED_ENVIRONMENT: Dict[str, str] = {
    "GATEWAY_AUTH_SECRET": "Shared secret used to verify bearer tokens.",
}


def analyse_environment() -> Dict[str, List[str]]:
    """Return lists of missing or insecure variables without raising.

    The shared secret is not required when tokens are verified against a
    Keycloak realm instead.
    """

    missing: List[str] = []
    insecure: List[str] = []

    secret = os.getenv("GATEWAY_AUTH_SECRET")
    if not secret:
        if not os.getenv("KEYCLOAK_SERVER_URL"):
            missing.append("GATEWAY_AUTH_SECRET")
    elif secret == DEFAULT_SECRET:
        insecure.append("GATEWAY_AUTH_SECRET")

    return {"missing": missing, "insecure": insecure}


def validate_environment() -> None:
    """Fail fast when critical environment variables are missing or insecure."""

    issues = analyse_environment()
    problems = []
    if issues["missing"]:
        problems.append(f"missing values: {', '.join(sorted(issues['missing']))}")
    if issues["insecure"]:
        problems.append("insecure defaults detected: " + ", ".join(sorted(issues["insecure"])))

    if problems:
        raise RuntimeError("Invalid gateway configuration: " + "; ".join(problems))


__all__ = ["DEFAULT_SECRET", "REQUIRED_ENVIRONMENT", "analyse_environment", "validate_environment"]
