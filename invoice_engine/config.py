"""Engine configuration loaded from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_REFERENCE_FORMAT = "INV-001"


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class EngineConfig:
    """Tunables for the command engine.

    creation_grace_seconds: how long a second create waits for an in-flight
        one on the same (owner, document type) before being refused.
    creation_stale_seconds: age after which an unreleased creation lock is
        swept.
    recent_document_window: how many recent documents the edit-target
        heuristic considers.
    """

    creation_grace_seconds: float = 1.0
    creation_stale_seconds: float = 30.0
    recent_document_window: int = 5
    default_reference_format: str = DEFAULT_REFERENCE_FORMAT
    payment_terms_days: int = 30
    estimate_validity_days: int = 30
    free_plan_limit: int = 3
    enforce_usage_limits: bool = False
    log_level: str = "info"


def load_config() -> EngineConfig:
    """Build an EngineConfig from ``INVOICE_ENGINE_*`` environment variables.

    Environment variables:
        INVOICE_ENGINE_CREATION_GRACE_SECONDS: default 1.0
        INVOICE_ENGINE_CREATION_STALE_SECONDS: default 30
        INVOICE_ENGINE_RECENT_WINDOW: default 5
        INVOICE_ENGINE_DEFAULT_REFERENCE_FORMAT: default INV-001
        INVOICE_ENGINE_PAYMENT_TERMS_DAYS: default 30
        INVOICE_ENGINE_ESTIMATE_VALIDITY_DAYS: default 30
        INVOICE_ENGINE_FREE_PLAN_LIMIT: default 3
        INVOICE_ENGINE_ENFORCE_USAGE_LIMITS: default false
        LOG_LEVEL: default info
    """
    return EngineConfig(
        creation_grace_seconds=float(
            os.getenv("INVOICE_ENGINE_CREATION_GRACE_SECONDS", "1.0")
        ),
        creation_stale_seconds=float(
            os.getenv("INVOICE_ENGINE_CREATION_STALE_SECONDS", "30")
        ),
        recent_document_window=int(os.getenv("INVOICE_ENGINE_RECENT_WINDOW", "5")),
        default_reference_format=os.getenv(
            "INVOICE_ENGINE_DEFAULT_REFERENCE_FORMAT", DEFAULT_REFERENCE_FORMAT
        ),
        payment_terms_days=int(os.getenv("INVOICE_ENGINE_PAYMENT_TERMS_DAYS", "30")),
        estimate_validity_days=int(
            os.getenv("INVOICE_ENGINE_ESTIMATE_VALIDITY_DAYS", "30")
        ),
        free_plan_limit=int(os.getenv("INVOICE_ENGINE_FREE_PLAN_LIMIT", "3")),
        enforce_usage_limits=_parse_bool(
            os.getenv("INVOICE_ENGINE_ENFORCE_USAGE_LIMITS"), False
        ),
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )
