"""
Event catalog and volunteer roster.

Joining is one conditional update: the volunteer must not already be on the
roster and the roster slot at index `maxVolunteers - 1` must not exist yet.
Two racing joins can therefore never push the roster past capacity. When the
update matches nothing, the event is reloaded only to pick the right error.
"""
import logging
from typing import Any, Dict, List

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.database import Database

from database import EVENTS, NGOS, USERS, create_document, get_documents, serialize_doc, to_object_id, utcnow
from errors import CapacityError, ConflictError, ForbiddenError, NotFoundError, ValidationError
from schemas import Event, EventCreate, EventUpdate

logger = logging.getLogger(__name__)

EVENT_NOT_FOUND = "Event not found"
ALREADY_JOINED = "You have already registered for this event"


class EventCatalog:
    def __init__(self, db: Database):
        self.db = db
        self.events = db[EVENTS]

    # ===== Presentation =====

    def present(self, event: Dict[str, Any], with_volunteers: bool = False) -> Dict[str, Any]:
        out = serialize_doc(event)
        count = len(event.get("volunteerIds", []))
        out["volunteerCount"] = count
        out["isFull"] = count >= event.get("maxVolunteers", 0)
        out["isPast"] = event["date"] < utcnow()
        ngo = self.db[NGOS].find_one({"_id": event.get("organizationId")}, {"name": 1, "email": 1})
        out["organization"] = serialize_doc(ngo)
        if with_volunteers:
            out["volunteers"] = self._volunteers(event.get("volunteerIds", []))
        return out

    def _volunteers(self, ids: List[ObjectId]) -> List[Dict[str, Any]]:
        if not ids:
            return []
        docs = self.db[USERS].find({"_id": {"$in": ids}}, {"name": 1, "email": 1})
        return [serialize_doc(d) for d in docs]

    # ===== Catalog =====

    def create(self, owner_user_id: str, payload: EventCreate) -> Dict[str, Any]:
        ngo = self.db[NGOS].find_one({"ownerUserId": to_object_id(owner_user_id, "NGO not found")})
        if ngo is None:
            raise NotFoundError("NGO not found")
        if payload.date < utcnow():
            raise ValidationError("Event date must be in the future", field="date")
        event = Event(
            title=payload.title,
            description=payload.description,
            date=payload.date,
            location=payload.location,
            organization_id=ngo["_id"],
            max_volunteers=payload.max_volunteers,
        )
        event_id = create_document(self.db, EVENTS, event)
        logger.info(f"Event created: {event_id} for NGO {ngo['_id']}")
        return self.events.find_one({"_id": event_id})

    def get(self, event_id: str) -> Dict[str, Any]:
        event = self.events.find_one({"_id": to_object_id(event_id, EVENT_NOT_FOUND)})
        if event is None:
            raise NotFoundError(EVENT_NOT_FOUND, resource_id=str(event_id))
        return event

    def list_all(self) -> List[Dict[str, Any]]:
        return get_documents(self.db, EVENTS, sort=[("date", 1)])

    def list_for_organization(self, ngo_id: str) -> List[Dict[str, Any]]:
        oid = to_object_id(ngo_id, "NGO not found")
        return list(self.events.find({"organizationId": oid}).sort("date", -1))

    def list_for_owner(self, user_id: str) -> List[Dict[str, Any]]:
        ngo = self.db[NGOS].find_one({"ownerUserId": to_object_id(user_id, "NGO not found")})
        if ngo is None:
            raise NotFoundError("NGO not found")
        return list(self.events.find({"organizationId": ngo["_id"]}).sort("date", -1))

    def list_joined(self, volunteer_id: str) -> List[Dict[str, Any]]:
        vid = to_object_id(volunteer_id, "User not found")
        return list(self.events.find({"volunteerIds": vid}).sort("date", 1))

    def _owned(self, event_id: str, user_id: str) -> Dict[str, Any]:
        event = self.get(event_id)
        ngo = self.db[NGOS].find_one({"ownerUserId": to_object_id(user_id, "NGO not found")})
        if ngo is None or ngo["_id"] != event["organizationId"]:
            raise ForbiddenError()
        return event

    def update(self, event_id: str, user_id: str, changes: EventUpdate) -> Dict[str, Any]:
        event = self._owned(event_id, user_id)
        fields = changes.model_dump(by_alias=True, exclude_unset=True, exclude_none=True)
        if not fields:
            return event
        fields["updatedAt"] = utcnow()

        filt: Dict[str, Any] = {"_id": event["_id"]}
        new_max = fields.get("maxVolunteers")
        if new_max is not None:
            # the roster must still fit after shrinking
            filt[f"volunteerIds.{new_max}"] = {"$exists": False}
        updated = self.events.find_one_and_update(filt, {"$set": fields}, return_document=ReturnDocument.AFTER)
        if updated is None:
            self.get(event_id)
            raise ValidationError("Maximum volunteers cannot be lower than the current roster size", field="maxVolunteers")
        return updated

    def delete(self, event_id: str, user_id: str) -> None:
        event = self._owned(event_id, user_id)
        self.events.delete_one({"_id": event["_id"]})
        logger.info(f"Event deleted: {event_id}")

    # ===== Roster =====

    def join(self, event_id: str, volunteer_id: str) -> Dict[str, Any]:
        event = self.get(event_id)
        vid = to_object_id(volunteer_id, "User not found")
        capacity = event.get("maxVolunteers", 0)
        if capacity < 1:
            raise CapacityError()

        updated = self.events.find_one_and_update(
            {
                "_id": event["_id"],
                "maxVolunteers": capacity,
                "volunteerIds": {"$ne": vid},
                f"volunteerIds.{capacity - 1}": {"$exists": False},
            },
            {"$push": {"volunteerIds": vid}, "$set": {"updatedAt": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if updated is not None:
            logger.info(f"Volunteer {volunteer_id} joined event {event_id}")
            return updated

        current = self.get(event_id)
        roster = current.get("volunteerIds", [])
        if len(roster) >= current.get("maxVolunteers", 0):
            raise CapacityError()
        if vid in roster:
            raise ConflictError(ALREADY_JOINED)
        # capacity was edited between our read and write
        return self.join(event_id, volunteer_id)

    def leave(self, event_id: str, volunteer_id: str) -> Dict[str, Any]:
        updated = self.events.find_one_and_update(
            {"_id": to_object_id(event_id, EVENT_NOT_FOUND)},
            {"$pull": {"volunteerIds": to_object_id(volunteer_id, "User not found")}},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            raise NotFoundError(EVENT_NOT_FOUND, resource_id=str(event_id))
        return updated

