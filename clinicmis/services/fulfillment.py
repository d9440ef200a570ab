# FILE: clinicmis/services/fulfillment.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from sqlalchemy.orm import Session

from clinicmis.models.billing import Billing
from clinicmis.models.prescription import Prescription
from clinicmis.schemas.pharmacy import DispenseItemIn
from clinicmis.services.billing import generate_billing
from clinicmis.services.pharmacy import dispense_prescription
from clinicmis.services.unit_of_work import run_in_transaction

logger = logging.getLogger(__name__)


@dataclass
class FulfillmentResult:
    prescription: Prescription
    dispensing_number: Optional[str]
    billing: Billing


def dispense_and_bill(
    db: Session,
    prescription_id: int,
    items: Sequence[DispenseItemIn],
    pharmacist_id: int,
    consultation_fee: Any = 0,
    user_id: Optional[int] = None,
    *,
    attempts: Optional[int] = None,
    backoff_seconds: Optional[float] = None,
) -> FulfillmentResult:
    """
    Dispense + invoice as one unit. Either both land or neither does;
    a lost number race re-runs the whole thing with fresh numbers.
    """

    def _work(s: Session) -> FulfillmentResult:
        rx, dispensing_number = dispense_prescription(s,
                                                      prescription_id,
                                                      items,
                                                      pharmacist_id,
                                                      user_id=user_id)
        billing = generate_billing(s,
                                   rx.id,
                                   consultation_fee=consultation_fee,
                                   user_id=user_id,
                                   require_dispensed=True)
        return FulfillmentResult(prescription=rx,
                                 dispensing_number=dispensing_number,
                                 billing=billing)

    result = run_in_transaction(db,
                                _work,
                                attempts=attempts,
                                backoff_seconds=backoff_seconds)
    logger.info("Fulfilled %s -> %s / %s", result.prescription.prescription_number,
                result.dispensing_number, result.billing.invoice_number)
    return result
