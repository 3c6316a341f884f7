"""Audit trail for realm, identity provider and federation changes.

Each change event is appended to a JSONL file with an HMAC-SHA256 signature.
``AuditTrail`` instances are registered as ``EventBus`` observers.
"""

from __future__ import annotations
import datetime
import hashlib
import hmac
import json
import logging
from pathlib import Path
from typing import Any

from .core.events import ChangeEvent

logger = logging.getLogger(__name__)

AUDIT_LOG_FILENAME = "realm-events.jsonl"


def _sign_event(event: dict[str, Any], signing_key: bytes) -> str:
    """Generate HMAC-SHA256 signature for audit event."""
    if not signing_key:
        return ""
    # Canonical JSON representation for signing
    canonical = json.dumps(event, sort_keys=True, separators=(",", ":"))
    return hmac.new(signing_key, canonical.encode("utf-8"), hashlib.sha256).hexdigest()


class AuditTrail:
    """Append-only signed JSONL audit log.

    Usage:
        trail = AuditTrail(".runtime/audit", signing_key="secret")
        events.register(trail)
        total, valid = trail.verify()
    """

    def __init__(self, log_dir: str | Path, signing_key: str = "", operator: str = "system"):
        self.log_dir = Path(log_dir)
        self.log_file = self.log_dir / AUDIT_LOG_FILENAME
        self.signing_key = signing_key.strip().encode("utf-8")
        self.operator = operator

    def _ensure_audit_dir(self) -> None:
        """Create audit directory with restricted permissions."""
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.log_dir.chmod(0o700)

    def record(self, event: ChangeEvent, success: bool = True) -> dict[str, Any]:
        """Append ``event`` to the audit trail with timestamp and signature.

        Returns:
            The entry as written
        """
        self._ensure_audit_dir()
        entry = {
            "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
            "event_type": event.type,
            "realm_id": event.realm_id,
            "resource_id": event.resource_id,
            "operator": self.operator,
            "success": success,
            "details": dict(event.details),
        }
        signature = _sign_event(entry, self.signing_key)
        if signature:
            entry["signature"] = signature

        with self.log_file.open("a", encoding="utf-8") as f:
            f.write(json.dumps(entry, ensure_ascii=False) + "\n")
        self.log_file.chmod(0o600)
        return entry

    def __call__(self, event: ChangeEvent) -> None:
        self.record(event)

    def verify(self) -> tuple[int, int]:
        """Verify all signatures in the audit log.

        Returns:
            Tuple of (total_events, valid_signatures)
        """
        if not self.log_file.exists():
            return 0, 0

        total = 0
        valid = 0
        with self.log_file.open("r", encoding="utf-8") as f:
            for line in f:
                if not line.strip():
                    continue
                total += 1
                try:
                    entry = json.loads(line)
                except json.JSONDecodeError:
                    logger.warning("[audit] Skipping malformed audit line")
                    continue
                stored_sig = entry.pop("signature", "")
                if not stored_sig:
                    continue
                if hmac.compare_digest(stored_sig, _sign_event(entry, self.signing_key)):
                    valid += 1
        return total, valid
