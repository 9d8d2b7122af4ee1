"""
directorio/core/logging.py — loguru structured JSON logging setup
Every rate-limit denial, store write, review mutation, image transfer and
auth call goes through one of the helpers below.
"""
from __future__ import annotations

import json
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Optional

from loguru import logger


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure loguru for structured JSON output to stdout.
    The hosting platform captures stdout; one JSON object per line.
    """
    # Remove default loguru handler
    logger.remove()

    logger.add(
        sys.stdout,
        level=log_level.upper(),
        format="{message}",
        serialize=True,       # loguru built-in JSON serialization
        backtrace=True,
        diagnose=False,       # never dump locals (tokens, emails) in production
        colorize=False,
    )


def _build_log_record(
    component: str,
    operation: str,
    extra: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Build a base structured log record."""
    record: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "component": component,
        "operation": operation,
    }
    if extra:
        record.update(extra)
    return record


# ──────────────────────────────────────────────────────────────────────────────
# Event helpers
# ──────────────────────────────────────────────────────────────────────────────

def log_rate_limit_decision(
    route: str,
    client: str,
    allowed: bool,
    tokens_left: Optional[float],
    fail_open: bool = False,
) -> None:
    """Denials and fail-open decisions log at INFO, plain allows at DEBUG."""
    record = _build_log_record("rate_limiter", "check", {
        "route": route,
        "client": client,
        "allowed": allowed,
        "tokens_left": tokens_left,
        "fail_open": fail_open,
    })
    if allowed and not fail_open:
        logger.debug(json.dumps(record))
    else:
        logger.info(json.dumps(record))


def log_store_operation(
    collection: str,
    operation: str,  # add | get | set | update | delete | query
    success: bool,
    latency_ms: float,
    document_id: Optional[str] = None,
    error: Optional[str] = None,
) -> None:
    """Every Firestore call that writes or fails."""
    record = _build_log_record("document_store", operation, {
        "collection": collection,
        "document_id": document_id,
        "success": success,
        "latency_ms": round(latency_ms, 2),
        "error": error,
    })
    if success:
        logger.debug(json.dumps(record))
    else:
        logger.warning(json.dumps(record))


def log_review_event(
    operation: str,  # submit | flag | delete | respond
    business_id: str,
    review_id: Optional[str],
    user_id: Optional[str],
    rating: Optional[float] = None,
    attempts: int = 1,
) -> None:
    record = _build_log_record("review_aggregator", operation, {
        "business_id": business_id,
        "review_id": review_id,
        "user_id": user_id,
        "business_rating": rating,
        "attempts": attempts,
    })
    logger.info(json.dumps(record))


def log_storage_operation(
    path: str,
    operation: str,  # upload | delete
    success: bool,
    size_bytes: Optional[int] = None,
    error: Optional[str] = None,
) -> None:
    record = _build_log_record("image_storage", operation, {
        "path": path,
        "success": success,
        "size_bytes": size_bytes,
        "error": error,
    })
    if success:
        logger.info(json.dumps(record))
    else:
        logger.warning(json.dumps(record))


def log_auth_event(
    operation: str,  # sign_in | sign_up | sign_out | provider | verify_email
    success: bool,
    uid: Optional[str] = None,
    error: Optional[str] = None,
) -> None:
    # Never log emails or passwords here
    record = _build_log_record("identity", operation, {
        "uid": uid,
        "success": success,
        "error": error,
    })
    logger.info(json.dumps(record))


def log_error(
    component: str,
    operation: str,
    error: Exception,
    context: Optional[dict[str, Any]] = None,
) -> None:
    """Every unexpected error, with stack trace and context."""
    tb = traceback.format_exc()
    record = _build_log_record(component, operation, {
        "error_type": type(error).__name__,
        "error_message": str(error),
        "stack_trace": tb[:2000] if tb else "",
        "context": context or {},
    })
    logger.error(json.dumps(record))
