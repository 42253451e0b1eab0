"""
Audit logging for inventory mutations.

Every insert, update and delete applied by the store is written as one JSON
line to the "audit" logger, so stock changes can be reconstructed later even
when the durable write behind them failed.
"""
import logging
import json
from datetime import datetime, timezone
from typing import Any, Optional, Dict

# Separate logger for audit events (can be shipped to centralized logging)
audit_logger = logging.getLogger("audit")


class AuditLog:
    """Central audit logging for inventory events."""

    @staticmethod
    def log_action(
        action: str,  # "create", "update", "update_quantity", "delete", "reclassify"
        resource_type: str,  # "supply_item"
        resource_id: int,
        changes: Optional[Dict[str, Any]] = None,
    ):
        """
        Log an applied mutation.

        Usage:
            AuditLog.log_action("update_quantity", "supply_item", 12, changes={"current_quantity": 40})
            AuditLog.log_action("delete", "supply_item", 12, changes={"name": "Gauze"})
        """
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": f"{resource_type}.{action}",
            "resource_id": resource_id,
        }

        if changes:
            log_entry["changes"] = changes

        audit_logger.info(json.dumps(log_entry, default=str))

    @staticmethod
    def log_persistence_failure(
        operation: str,  # "persist", "remove"
        resource_id: int,
        error: Exception,
    ):
        """
        Log a durable write that failed after the in-memory change was applied.

        The store keeps serving the new state; this entry is what an operator
        uses to replay or repair the backing table.
        """
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_severity": "WARNING",
            "event_type": f"storage.{operation}_failed",
            "resource_id": resource_id,
            "error": f"{type(error).__name__}: {error}",
        }

        audit_logger.warning(json.dumps(log_entry))
