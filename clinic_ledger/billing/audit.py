"""Append-only audit trail for ledger mutations.

Every component receives an ``AuditTrail`` and calls ``record`` once per
successful mutation, after the mutation has committed. Recording is
fire-and-forget: a failure to store the entry never undoes the mutation. The
entry is instead logged as a warning and appended to
``audit_failures.jsonl`` so it can be reconciled later.
"""

from __future__ import annotations

import enum
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, Protocol

from pydantic import BaseModel

from clinic_ledger.core.repository import AuditRepository

if TYPE_CHECKING:
    from clinic_ledger.core.database import LedgerStore

logger = logging.getLogger(__name__)


class AuditAction(str, enum.Enum):
    create_billing_code = "CREATE_BILLING_CODE"
    update_billing_code = "UPDATE_BILLING_CODE"
    create_appointment_billing = "CREATE_APPOINTMENT_BILLING"
    create_invoice = "CREATE_INVOICE"
    update_invoice = "UPDATE_INVOICE"
    cancel_invoice = "CANCEL_INVOICE"
    update_invoice_status = "UPDATE_INVOICE_STATUS"
    record_payment = "RECORD_PAYMENT"
    mark_appointment_billed = "MARK_APPOINTMENT_BILLED"
    create_expense = "CREATE_EXPENSE"
    update_expense = "UPDATE_EXPENSE"


def snapshot(value: BaseModel | dict | None) -> Optional[dict]:
    """Serialize a schema object into a JSON-safe dict for storage."""
    if value is None:
        return None
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return json.loads(json.dumps(value, default=str))


class AuditTrail(Protocol):
    async def record(
        self,
        actor_id: Optional[str],
        action: AuditAction | str,
        entity_type: str,
        entity_id: Any,
        old_value: BaseModel | dict | None,
        new_value: BaseModel | dict | None,
    ) -> None: ...


class DatabaseAuditTrail:
    """Stores audit entries in the ``audit_log`` table, one transaction each."""

    def __init__(self, store: LedgerStore, fallback_dir: Optional[Path] = None):
        self.store = store
        self.fallback_file = (fallback_dir or Path("data/logs")) / "audit_failures.jsonl"

    async def record(
        self,
        actor_id: Optional[str],
        action: AuditAction | str,
        entity_type: str,
        entity_id: Any,
        old_value: BaseModel | dict | None,
        new_value: BaseModel | dict | None,
    ) -> None:
        action_name = action.value if isinstance(action, AuditAction) else action
        old = snapshot(old_value)
        new = snapshot(new_value)
        try:
            async with self.store.write() as session:
                await AuditRepository(session).log_action(
                    action=action_name,
                    entity_type=entity_type,
                    entity_id=str(entity_id),
                    actor_id=actor_id,
                    old_value=old,
                    new_value=new,
                )
        except Exception as e:
            logger.warning(
                f"Audit entry not stored ({action_name} {entity_type}/{entity_id}): {e}"
            )
            self._write_fallback(
                {
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                    "actor_id": actor_id,
                    "action": action_name,
                    "entity_type": entity_type,
                    "entity_id": str(entity_id),
                    "old_value": old,
                    "new_value": new,
                    "error": str(e),
                }
            )

    log = record

    def _write_fallback(self, entry: dict) -> None:
        try:
            self.fallback_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.fallback_file, "a") as f:
                f.write(json.dumps(entry) + "\n")
        except OSError:
            logger.error("Failed to write audit fallback entry")
