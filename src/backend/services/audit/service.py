from __future__ import annotations

import json
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional

logger = logging.getLogger("audit")

AuditOutcome = Literal["success", "failure"]

# Keys that must never reach the audit log, whatever a caller passes in.
SENSITIVE_KEYS = frozenset({"password", "password_hash", "hash", "token", "authorization", "transcript", "audio_data"})


@dataclass
class AuditEvent:
    """Structured representation of an audit event.

    Payloads stay minimal: identifiers, outcomes and counts only. Passwords,
    hashes, tokens and transcript text never go into an event.
    """

    timestamp: str
    action: str
    resource_type: str
    outcome: AuditOutcome = "success"
    resource_id: Optional[str] = None
    subject: Optional[str] = None
    extra: Optional[Dict[str, Any]] = None


def _scrub(extra: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not extra:
        return None
    return {key: value for key, value in extra.items() if key.lower() not in SENSITIVE_KEYS}


class AuditService:
    def log_event(
        self,
        *,
        action: str,
        resource_type: str,
        outcome: AuditOutcome = "success",
        resource_id: Optional[str] = None,
        subject: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> AuditEvent:
        """Log a structured audit event as one JSON line.

        - `action`: verb, e.g. "login", "signup", "analyze_call".
        - `resource_type`: "account" or "call_analysis".
        - `outcome`: "success" or "failure".
        - `subject`: account id of the caller. If omitted, it is taken from
          the security context when a bearer token was validated.
        - `extra`: small dict of counts and flags; sensitive keys are dropped.
        """

        if subject is None:
            from src.backend.security import get_current_subject

            subject = get_current_subject()

        event = AuditEvent(
            timestamp=datetime.now(timezone.utc).isoformat(),
            action=action,
            resource_type=resource_type,
            outcome=outcome,
            resource_id=resource_id,
            subject=subject,
            extra=_scrub(extra),
        )

        record = asdict(event)
        try:
            line = json.dumps(record)
        except TypeError:
            # Non-serializable extra; keep the event without it.
            record["extra"] = None
            line = json.dumps(record)
        logger.info(line)

        return event


audit_service = AuditService()
