"""
Unit tests for the organization registry
"""
import pytest
from bson import ObjectId

from errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from organizations import OrganizationRegistry, present
from schemas import NGOCreate, NGOUpdate


@pytest.fixture
def registry(db):
    return OrganizationRegistry(db)


@pytest.fixture
def owner_id():
    return str(ObjectId())


@pytest.fixture
def ngo(registry, owner_id):
    return registry.register(owner_id, NGOCreate(name="Care Collective", email="Info@CareCollective.org"))


class TestRegister:
    def test_new_ngo_is_pending(self, ngo, owner_id):
        assert ngo["status"] == "pending"
        assert str(ngo["ownerUserId"]) == owner_id
        assert ngo["email"] == "info@carecollective.org"

    def test_duplicate_email_rejected(self, registry, ngo):
        with pytest.raises(ConflictError):
            registry.register(str(ObjectId()), NGOCreate(name="Copycat", email="info@carecollective.org"))

    def test_present_flags_approval(self, registry, ngo):
        assert present(ngo)["isApproved"] is False
        assert present(registry.approve(str(ngo["_id"])))["isApproved"] is True


class TestApproval:
    """Approve / reject lifecycle"""

    def test_approve(self, registry, ngo):
        assert registry.approve(str(ngo["_id"]))["status"] == "approved"

    def test_approve_is_idempotent(self, registry, ngo):
        first = registry.approve(str(ngo["_id"]))
        second = registry.approve(str(ngo["_id"]))
        assert first["status"] == second["status"] == "approved"

    def test_reject_then_approve(self, registry, ngo):
        assert registry.reject(str(ngo["_id"]))["status"] == "rejected"
        assert registry.approve(str(ngo["_id"]))["status"] == "approved"

    def test_unknown_ngo(self, registry):
        with pytest.raises(NotFoundError):
            registry.approve(str(ObjectId()))

    def test_only_approved_are_listed(self, registry, ngo):
        other = registry.register(str(ObjectId()), NGOCreate(name="Second Org", email="second@org.org"))
        registry.approve(str(other["_id"]))
        assert [n["_id"] for n in registry.list_approved()] == [other["_id"]]

    def test_list_all_by_status(self, registry, ngo):
        assert [n["_id"] for n in registry.list_all("pending")] == [ngo["_id"]]
        assert registry.list_all("approved") == []

    def test_list_all_rejects_unknown_status(self, registry):
        with pytest.raises(ValidationError):
            registry.list_all("archived")


class TestOwnership:
    def test_get_for_owner(self, registry, ngo, owner_id):
        assert registry.get_for_owner(owner_id)["_id"] == ngo["_id"]

    def test_get_for_owner_without_ngo(self, registry):
        with pytest.raises(NotFoundError):
            registry.get_for_owner(str(ObjectId()))

    def test_owner_updates(self, registry, ngo, owner_id):
        updated = registry.update(str(ngo["_id"]), owner_id, NGOUpdate(description="Meals for all"))
        assert updated["description"] == "Meals for all"
        assert updated["name"] == "Care Collective"

    def test_stranger_cannot_update(self, registry, ngo):
        with pytest.raises(ForbiddenError):
            registry.update(str(ngo["_id"]), str(ObjectId()), NGOUpdate(name="Hijacked"))

    def test_admin_deletes(self, registry, ngo):
        registry.delete(str(ngo["_id"]), str(ObjectId()), "admin")
        with pytest.raises(NotFoundError):
            registry.get(str(ngo["_id"]))

    def test_stranger_cannot_delete(self, registry, ngo):
        with pytest.raises(ForbiddenError):
            registry.delete(str(ngo["_id"]), str(ObjectId()), "volunteer")

    def test_null_fields_are_ignored_on_update(self, db, registry, ngo, owner_id):
        updated = registry.update(str(ngo["_id"]), owner_id, NGOUpdate(name=None, email=None))
        assert updated["name"] == "Care Collective"
        assert updated["email"] == "info@carecollective.org"
        stored = db["ngo"].find_one({"_id": ngo["_id"]})
        assert stored["name"] == "Care Collective"
        assert stored["email"] == "info@carecollective.org"


class TestPayloads:
    def test_register_rejects_bad_phone(self):
        with pytest.raises(ValueError):
            NGOCreate(name="Phone Check", email="phone@check.org", phone="12345")

    def test_register_accepts_valid_phone(self):
        assert NGOCreate(name="Phone Check", email="phone@check.org", phone="9876543210").phone == "9876543210"

    def test_update_rejects_bad_phone(self):
        with pytest.raises(ValueError):
            NGOUpdate(phone="0000000000")
