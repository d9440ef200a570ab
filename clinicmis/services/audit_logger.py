# FILE: clinicmis/services/audit_logger.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from clinicmis.models.audit import AuditLog

logger = logging.getLogger(__name__)


def log_audit(
    db: Session,
    user_id: Optional[int],
    table_name: str,
    record_id: Optional[int],
    action: str,
    old_values: Optional[Dict[str, Any]] = None,
    new_values: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """
    Stage an audit row in the caller's transaction.
    Does not commit: the entry lands or rolls back together with the change.
    """
    entry = AuditLog(
        user_id=user_id,
        action=action,
        table_name=table_name,
        record_id=record_id,
        old_values=jsonable_encoder(old_values) if old_values else None,
        new_values=jsonable_encoder(new_values) if new_values else None,
    )
    db.add(entry)
    logger.debug("audit %s %s#%s by user %s", action, table_name, record_id,
                 user_id)
    return entry
