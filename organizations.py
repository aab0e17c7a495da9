"""
Organization registry: NGO records and their approval lifecycle.

Approve and reject are idempotent. An admin may flip a rejected NGO back to
approved (and the reverse); nothing ever returns an NGO to pending.
"""
import logging
from typing import Any, Dict, List, Optional

from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

import config
from database import NGOS, create_document, get_documents, serialize_doc, to_object_id, utcnow
from errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from schemas import NGO, NGOCreate, NGOUpdate

logger = logging.getLogger(__name__)

NGO_NOT_FOUND = "NGO not found"
NGO_EXISTS = "NGO already exists with this email"


def present(ngo: Dict[str, Any]) -> Dict[str, Any]:
    out = serialize_doc(ngo)
    out["isApproved"] = ngo.get("status") == config.NGO_APPROVED
    return out


class OrganizationRegistry:
    def __init__(self, db: Database):
        self.db = db
        self.ngos = db[NGOS]

    def register(self, owner_user_id: str, payload: NGOCreate) -> Dict[str, Any]:
        ngo = NGO(
            **payload.model_dump(),
            owner_user_id=to_object_id(owner_user_id, "User not found"),
        )
        try:
            ngo_id = create_document(self.db, NGOS, ngo)
        except DuplicateKeyError:
            raise ConflictError(NGO_EXISTS)
        logger.info(f"NGO registered: {ngo_id} by user {owner_user_id}")
        return self.ngos.find_one({"_id": ngo_id})

    def get(self, ngo_id: str) -> Dict[str, Any]:
        ngo = self.ngos.find_one({"_id": to_object_id(ngo_id, NGO_NOT_FOUND)})
        if ngo is None:
            raise NotFoundError(NGO_NOT_FOUND, resource_id=str(ngo_id))
        return ngo

    def get_for_owner(self, user_id: str) -> Dict[str, Any]:
        ngo = self.ngos.find_one({"ownerUserId": to_object_id(user_id, NGO_NOT_FOUND)})
        if ngo is None:
            raise NotFoundError(NGO_NOT_FOUND)
        return ngo

    def list_approved(self) -> List[Dict[str, Any]]:
        return get_documents(self.db, NGOS, {"status": config.NGO_APPROVED}, sort=[("createdAt", -1)])

    def list_all(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        if status is not None and status not in config.NGO_STATUSES:
            raise ValidationError(f"{status} is not a valid status", field="status")
        filt = {"status": status} if status else {}
        return get_documents(self.db, NGOS, filt, sort=[("createdAt", -1)])

    def update(self, ngo_id: str, user_id: str, changes: NGOUpdate) -> Dict[str, Any]:
        ngo = self.get(ngo_id)
        if str(ngo["ownerUserId"]) != user_id:
            raise ForbiddenError()
        fields = changes.model_dump(by_alias=True, exclude_unset=True, exclude_none=True)
        if not fields:
            return ngo
        fields["updatedAt"] = utcnow()
        try:
            return self.ngos.find_one_and_update(
                {"_id": ngo["_id"]}, {"$set": fields}, return_document=ReturnDocument.AFTER
            )
        except DuplicateKeyError:
            raise ConflictError(NGO_EXISTS)

    def delete(self, ngo_id: str, user_id: str, role: str) -> None:
        ngo = self.get(ngo_id)
        if role != config.ROLE_ADMIN and str(ngo["ownerUserId"]) != user_id:
            raise ForbiddenError()
        self.ngos.delete_one({"_id": ngo["_id"]})
        logger.info(f"NGO deleted: {ngo_id}")

    # ===== Approval =====

    def approve(self, ngo_id: str) -> Dict[str, Any]:
        return self._set_status(ngo_id, config.NGO_APPROVED)

    def reject(self, ngo_id: str) -> Dict[str, Any]:
        return self._set_status(ngo_id, config.NGO_REJECTED)

    def _set_status(self, ngo_id: str, status: str) -> Dict[str, Any]:
        oid = to_object_id(ngo_id, NGO_NOT_FOUND)
        ngo = self.ngos.find_one_and_update(
            {"_id": oid, "status": {"$ne": status}},
            {"$set": {"status": status, "updatedAt": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if ngo is not None:
            logger.info(f"NGO {ngo_id} status -> {status}")
            return ngo
        # already in the requested status, or gone
        return self.get(ngo_id)
