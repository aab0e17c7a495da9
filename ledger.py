"""
Donation ledger.

Every entry starts `pending` and moves exactly once, to `completed` or
`failed`. The move is a conditional update on `paymentStatus == "pending"`,
so two concurrent transitions cannot both win. `paymentId` / `orderId` are
guarded by unique sparse indexes (see database.ensure_indexes); entries
without refs simply omit the fields.
"""
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

import config
from database import DONATIONS, EVENTS, NGOS, USERS, create_document, serialize_doc, to_object_id, utcnow
from errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from schemas import Donation

logger = logging.getLogger(__name__)

DONATION_NOT_FOUND = "Donation not found"
TERMINAL_STATUSES = (config.PAYMENT_COMPLETED, config.PAYMENT_FAILED)


def validate_amount(amount: Any) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError("Amount must be a whole number", field="amount")
    if amount < config.DONATION_MIN_AMOUNT:
        raise ValidationError(f"Minimum donation amount is ₹{config.DONATION_MIN_AMOUNT}", field="amount")
    if amount > config.DONATION_MAX_AMOUNT:
        raise ValidationError(f"Maximum donation amount is ₹{config.DONATION_MAX_AMOUNT}", field="amount")
    return amount


class DonationLedger:
    def __init__(self, db: Database):
        self.db = db
        self.donations = db[DONATIONS]

    def create(
        self,
        amount: int,
        organization_id: str,
        donor_id: Optional[str] = None,
        event_id: Optional[str] = None,
        payment_id: Optional[str] = None,
        order_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Insert a pending entry; refs given here land in the same write"""
        validate_amount(amount)
        org_oid = to_object_id(organization_id, "NGO not found")
        if self.db[NGOS].find_one({"_id": org_oid}, {"_id": 1}) is None:
            raise ValidationError("Donation must reference an existing NGO", field="organizationId")

        entry = Donation(
            donor_id=to_object_id(donor_id, "User not found") if donor_id else None,
            amount=amount,
            organization_id=org_oid,
            event_id=to_object_id(event_id, "Event not found") if event_id else None,
        ).model_dump(by_alias=True)
        if payment_id:
            entry["paymentId"] = payment_id
        if order_id:
            entry["orderId"] = order_id

        try:
            entry_id = create_document(self.db, DONATIONS, entry)
        except DuplicateKeyError:
            raise ConflictError("Payment reference already in use")
        return self.donations.find_one({"_id": entry_id})

    def attach_payment_refs(self, entry_id: str, payment_id: str, order_id: str) -> Dict[str, Any]:
        if not payment_id or not order_id:
            raise ValidationError("Both paymentId and orderId are required")
        try:
            entry = self.donations.find_one_and_update(
                {"_id": to_object_id(entry_id, DONATION_NOT_FOUND)},
                {"$set": {"paymentId": payment_id, "orderId": order_id, "updatedAt": utcnow()}},
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            raise ConflictError("Payment reference already in use")
        if entry is None:
            raise NotFoundError(DONATION_NOT_FOUND, resource_id=str(entry_id))
        return entry

    def transition(self, entry_id: str, status: str) -> Dict[str, Any]:
        """pending -> completed | failed, nothing else"""
        if status not in TERMINAL_STATUSES:
            raise ValidationError(f"{status} is not a valid target status", field="paymentStatus")
        oid = to_object_id(entry_id, DONATION_NOT_FOUND)
        entry = self.donations.find_one_and_update(
            {"_id": oid, "paymentStatus": config.PAYMENT_PENDING},
            {"$set": {"paymentStatus": status, "updatedAt": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if entry is not None:
            return entry
        current = self.get(entry_id)
        raise InvalidStateError(
            f"Donation is already {current['paymentStatus']}",
            current_state=current["paymentStatus"],
        )

    def get(self, entry_id: str) -> Dict[str, Any]:
        entry = self.donations.find_one({"_id": to_object_id(entry_id, DONATION_NOT_FOUND)})
        if entry is None:
            raise NotFoundError(DONATION_NOT_FOUND, resource_id=str(entry_id))
        return entry

    def list_entries(
        self,
        organization_id: Optional[str] = None,
        donor_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        filt: Dict[str, Any] = {}
        if organization_id:
            filt["organizationId"] = to_object_id(organization_id, "NGO not found")
        if donor_id:
            filt["donorId"] = to_object_id(donor_id, "User not found")
        if status:
            if status not in config.PAYMENT_STATUSES:
                raise ValidationError(f"{status} is not a valid payment status", field="status")
            filt["paymentStatus"] = status
        return list(self.donations.find(filt).sort("createdAt", -1))

    # ===== Reporting =====

    def aggregate_total(self, organization_id: str) -> int:
        result = list(self.donations.aggregate([
            {"$match": {
                "organizationId": to_object_id(organization_id, "NGO not found"),
                "paymentStatus": config.PAYMENT_COMPLETED,
            }},
            {"$group": {"_id": None, "total": {"$sum": "$amount"}}},
        ]))
        return result[0]["total"] if result else 0

    def statistics(self) -> Dict[str, Dict[str, int]]:
        stats = {status: {"count": 0, "totalAmount": 0} for status in config.PAYMENT_STATUSES}
        for row in self.donations.aggregate([
            {"$group": {"_id": "$paymentStatus", "count": {"$sum": 1}, "totalAmount": {"$sum": "$amount"}}},
        ]):
            stats[row["_id"]] = {"count": row["count"], "totalAmount": row["totalAmount"]}
        return stats

    def expire_stale_pending(self, max_age: Optional[timedelta] = None) -> int:
        """Fail pending entries nobody verified within `max_age`"""
        if max_age is None:
            max_age = timedelta(minutes=config.PENDING_DONATION_TTL_MINUTES)
        now = utcnow()
        result = self.donations.update_many(
            {"paymentStatus": config.PAYMENT_PENDING, "createdAt": {"$lte": now - max_age}},
            {"$set": {"paymentStatus": config.PAYMENT_FAILED, "updatedAt": now}},
        )
        if result.modified_count:
            logger.info(f"Expired {result.modified_count} stale pending donations")
        return result.modified_count

    # ===== Presentation =====

    def present(self, entry: Dict[str, Any]) -> Dict[str, Any]:
        """Entry with donor, organization and event resolved"""
        out = serialize_doc(entry)
        out.setdefault("paymentId", None)
        out.setdefault("orderId", None)
        out["currency"] = config.PAYMENT_CURRENCY
        out["date"] = entry.get("createdAt")
        out["donor"] = self._lookup(USERS, entry.get("donorId"), {"name": 1, "email": 1})
        out["organization"] = self._lookup(NGOS, entry.get("organizationId"), {"name": 1})
        out["event"] = self._lookup(EVENTS, entry.get("eventId"), {"title": 1})
        return out

    def _lookup(self, collection: str, oid, projection: Dict[str, int]) -> Optional[Dict[str, Any]]:
        if oid is None:
            return None
        return serialize_doc(self.db[collection].find_one({"_id": oid}, projection))
