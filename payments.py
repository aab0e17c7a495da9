"""
Fake payment gateway.

Two calls stand in for a real gateway's redirect flow:

    initiate  ->  ledger entry created `pending` with orderId + paymentId
    verify    ->  ids cross-checked, outcome drawn, entry moved to
                  `completed` or `failed` (final; retrying means a new
                  donation)

The outcome comes from an OutcomeDecider so tests can force it.
"""
import logging
import secrets
import string
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

from pymongo.database import Database

import config
from database import EVENTS, NGOS, to_object_id
from errors import ConflictError, InvalidStateError, NotFoundError, PaymentRequiredError, ValidationError
from ledger import DonationLedger, validate_amount

logger = logging.getLogger(__name__)

MAX_REFERENCE_ATTEMPTS = 3
_ALPHABET = string.ascii_lowercase + string.digits


class OutcomeDecider(ABC):
    """Decides whether a simulated payment goes through"""

    @abstractmethod
    def succeeds(self, donation: Dict[str, Any]) -> bool:
        ...


class RandomOutcomeDecider(OutcomeDecider):
    def __init__(self, success_rate: float = config.PAYMENT_SUCCESS_RATE):
        if not 0.0 <= success_rate <= 1.0:
            raise ValueError("success_rate must be between 0 and 1")
        self.success_rate = success_rate
        self._rng = secrets.SystemRandom()

    def succeeds(self, donation: Dict[str, Any]) -> bool:
        return self._rng.random() < self.success_rate


class FixedOutcomeDecider(OutcomeDecider):
    def __init__(self, outcome: bool):
        self.outcome = outcome

    def succeeds(self, donation: Dict[str, Any]) -> bool:
        return self.outcome


def generate_reference(prefix: str) -> str:
    """`<prefix>_<epoch ms>_<9 random chars>`, e.g. pay_1718000000000_k3j9x0q2a"""
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(9))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


class PaymentSimulator:
    def __init__(
        self,
        db: Database,
        decider: Optional[OutcomeDecider] = None,
        reference_factory: Callable[[str], str] = generate_reference,
    ):
        self.db = db
        self.ledger = DonationLedger(db)
        self.decider = decider or RandomOutcomeDecider()
        self.reference_factory = reference_factory

    def initiate(
        self,
        amount: int,
        organization_id: str,
        event_id: Optional[str] = None,
        donor_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        validate_amount(amount)
        if not organization_id:
            raise ValidationError("NGO ID is required", field="organizationId")
        org_oid = to_object_id(organization_id, "NGO not found")
        if self.db[NGOS].find_one({"_id": org_oid}, {"_id": 1}) is None:
            raise NotFoundError("NGO not found", resource_id=str(organization_id))
        if event_id:
            event_oid = to_object_id(event_id, "Event not found")
            if self.db[EVENTS].find_one({"_id": event_oid}, {"_id": 1}) is None:
                raise NotFoundError("Event not found", resource_id=str(event_id))

        # the unique indexes are the real guard; regenerate on the rare clash
        for attempt in range(1, MAX_REFERENCE_ATTEMPTS + 1):
            order_id = self.reference_factory("order")
            payment_id = self.reference_factory("pay")
            try:
                entry = self.ledger.create(
                    amount,
                    organization_id,
                    donor_id=donor_id,
                    event_id=event_id,
                    payment_id=payment_id,
                    order_id=order_id,
                )
                break
            except ConflictError:
                logger.warning(f"Payment reference collision (attempt {attempt}/{MAX_REFERENCE_ATTEMPTS})")
        else:
            raise ConflictError("Could not allocate unique payment references")

        logger.info(f"Payment initiated: {payment_id} for ₹{amount} (donation {entry['_id']})")
        return {
            "orderId": order_id,
            "paymentId": payment_id,
            "donationId": str(entry["_id"]),
            "amount": amount,
            "organizationId": str(org_oid),
            "key": config.PAYMENT_MOCK_KEY,
            "amountInPaise": amount * 100,
            "currency": config.PAYMENT_CURRENCY,
        }

    def verify(self, donation_id: Optional[str], payment_id: Optional[str], order_id: Optional[str]) -> Dict[str, Any]:
        if not donation_id or not payment_id or not order_id:
            raise ValidationError("Missing payment verification details")

        entry = self.ledger.get(donation_id)
        if entry.get("paymentId") != payment_id or entry.get("orderId") != order_id:
            logger.warning(f"Payment verification mismatch for donation {donation_id}")
            raise ValidationError("Payment verification failed: IDs mismatch")
        if entry["paymentStatus"] != config.PAYMENT_PENDING:
            raise InvalidStateError(
                f"Donation is already {entry['paymentStatus']}",
                current_state=entry["paymentStatus"],
            )

        if not self.decider.succeeds(entry):
            self.ledger.transition(donation_id, config.PAYMENT_FAILED)
            logger.warning(f"Payment failed: {payment_id}")
            raise PaymentRequiredError(payment_id=payment_id)

        entry = self.ledger.transition(donation_id, config.PAYMENT_COMPLETED)
        logger.info(f"Payment verified: {payment_id} for ₹{entry['amount']}")
        return self.ledger.present(entry)

    def status(self, donation_id: str) -> Dict[str, Any]:
        return self.ledger.present(self.ledger.get(donation_id))
