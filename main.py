import logging
import os
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pymongo.database import Database
from pymongo.errors import PyMongoError
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

import config
from database import client, ensure_indexes, get_db
from errors import register_error_handlers
from events import EventCatalog
from identity import IdentityStore
from ledger import DonationLedger
from logging_config import setup_logging
from middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from organizations import OrganizationRegistry, present as present_ngo
from payments import OutcomeDecider, PaymentSimulator, RandomOutcomeDecider
from rate_limiter import auth_rate_limit, limiter, rate_limit_exceeded_handler
from schemas import (
    EventCreate,
    EventUpdate,
    LoginPayload,
    NGOCreate,
    NGOUpdate,
    PaymentInitiate,
    PaymentVerify,
    RegisterPayload,
)
from security import CurrentUser, get_current_user, get_optional_user, require_roles

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        ensure_indexes(get_db())
    except PyMongoError as e:
        logger.critical(f"Database unavailable at startup: {e}")
        raise
    logger.info(f"Volunteer Platform API started ({config.ENVIRONMENT})")
    yield
    client.close()
    logger.info("Database connection closed")


app = FastAPI(title="Volunteer Platform API", version="1.0.0", lifespan=lifespan)

# Rate limiter state and exception handler
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

# last added runs first
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.CLIENT_URL],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH"],
    allow_headers=["Content-Type", "Authorization"],
)
register_error_handlers(app)

api = APIRouter(prefix=config.API_PREFIX)

is_volunteer = require_roles(config.ROLE_VOLUNTEER)
is_ngo = require_roles(config.ROLE_NGO)
is_admin = require_roles(config.ROLE_ADMIN)

_default_decider = RandomOutcomeDecider(config.PAYMENT_SUCCESS_RATE)


# ===== Service dependencies =====

def get_identity(db: Database = Depends(get_db)) -> IdentityStore:
    return IdentityStore(db)


def get_registry(db: Database = Depends(get_db)) -> OrganizationRegistry:
    return OrganizationRegistry(db)


def get_catalog(db: Database = Depends(get_db)) -> EventCatalog:
    return EventCatalog(db)


def get_ledger(db: Database = Depends(get_db)) -> DonationLedger:
    return DonationLedger(db)


def get_outcome_decider() -> OutcomeDecider:
    return _default_decider


def get_payments(
    db: Database = Depends(get_db),
    decider: OutcomeDecider = Depends(get_outcome_decider),
) -> PaymentSimulator:
    return PaymentSimulator(db, decider)


def ok(data=None, message: Optional[str] = None, **extra):
    body = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    body.update(extra)
    return body


@app.get("/")
@limiter.exempt
def read_root():
    return {"name": "Volunteer Platform API", "status": "ok"}


@api.get("/health")
@limiter.exempt
def health(db: Database = Depends(get_db)):
    response = {
        "success": True,
        "message": "Server is running",
        "environment": config.ENVIRONMENT,
        "database": "Not Connected",
    }
    try:
        db.command("ping")
        response["database"] = "Connected"
    except PyMongoError as e:
        logger.warning(f"Health check could not reach the database: {e}")
        response["database"] = f"Error: {str(e)[:80]}"
    return response


# ===== Auth Endpoints =====

@api.post("/auth/register", status_code=201)
@auth_rate_limit()
def register(request: Request, payload: RegisterPayload, identity: IdentityStore = Depends(get_identity)):
    token, user = identity.register(payload)
    return ok(message="User registered successfully", token=token, user=user)


@api.post("/auth/login")
@auth_rate_limit()
def login(request: Request, payload: LoginPayload, identity: IdentityStore = Depends(get_identity)):
    token, user = identity.login(payload)
    return ok(message="Login successful", token=token, user=user)


# ===== Users =====

@api.get("/user/me")
def read_users_me(current_user: CurrentUser = Depends(get_current_user), identity: IdentityStore = Depends(get_identity)):
    return ok(identity.get_profile(current_user.id))


@api.get("/user")
def list_users(
    role: Optional[str] = None,
    _: CurrentUser = Depends(is_admin),
    identity: IdentityStore = Depends(get_identity),
):
    users = identity.list_users(role)
    return ok(users, count=len(users))


@api.delete("/user/{user_id}")
def delete_user(user_id: str, _: CurrentUser = Depends(is_admin), identity: IdentityStore = Depends(get_identity)):
    identity.delete_user(user_id)
    return ok(message="User deleted successfully")


# ===== NGOs =====

@api.post("/ngo/register", status_code=201)
def register_ngo(
    payload: NGOCreate,
    current_user: CurrentUser = Depends(get_current_user),
    registry: OrganizationRegistry = Depends(get_registry),
):
    ngo = registry.register(current_user.id, payload)
    return ok(present_ngo(ngo), message="NGO registered successfully")


@api.get("/ngo")
def list_approved_ngos(registry: OrganizationRegistry = Depends(get_registry)):
    ngos = [present_ngo(n) for n in registry.list_approved()]
    return ok(ngos, count=len(ngos))


@api.get("/ngo/my")
def my_ngo(current_user: CurrentUser = Depends(is_ngo), registry: OrganizationRegistry = Depends(get_registry)):
    return ok(present_ngo(registry.get_for_owner(current_user.id)))


@api.get("/ngo/{ngo_id}")
def get_ngo(ngo_id: str, registry: OrganizationRegistry = Depends(get_registry)):
    return ok(present_ngo(registry.get(ngo_id)))


@api.get("/ngo/{ngo_id}/total")
def ngo_donation_total(
    ngo_id: str,
    registry: OrganizationRegistry = Depends(get_registry),
    ledger: DonationLedger = Depends(get_ledger),
):
    registry.get(ngo_id)
    return ok({"organizationId": ngo_id, "total": ledger.aggregate_total(ngo_id), "currency": config.PAYMENT_CURRENCY})


@api.put("/ngo/{ngo_id}/approve")
def approve_ngo(ngo_id: str, _: CurrentUser = Depends(is_admin), registry: OrganizationRegistry = Depends(get_registry)):
    return ok(present_ngo(registry.approve(ngo_id)), message="NGO approved successfully")


@api.put("/ngo/{ngo_id}/reject")
def reject_ngo(ngo_id: str, _: CurrentUser = Depends(is_admin), registry: OrganizationRegistry = Depends(get_registry)):
    return ok(present_ngo(registry.reject(ngo_id)), message="NGO rejected")


@api.put("/ngo/{ngo_id}")
def update_ngo(
    ngo_id: str,
    payload: NGOUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    registry: OrganizationRegistry = Depends(get_registry),
):
    ngo = registry.update(ngo_id, current_user.id, payload)
    return ok(present_ngo(ngo), message="NGO updated successfully")


@api.delete("/ngo/{ngo_id}")
def delete_ngo(
    ngo_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    registry: OrganizationRegistry = Depends(get_registry),
):
    registry.delete(ngo_id, current_user.id, current_user.role)
    return ok(message="NGO deleted successfully")


# ===== Admin =====

@api.get("/admin/ngos")
def admin_list_ngos(
    status: Optional[str] = None,
    _: CurrentUser = Depends(is_admin),
    registry: OrganizationRegistry = Depends(get_registry),
):
    ngos = [present_ngo(n) for n in registry.list_all(status)]
    return ok(ngos, count=len(ngos))


@api.get("/admin/donations/stats")
def donation_statistics(_: CurrentUser = Depends(is_admin), ledger: DonationLedger = Depends(get_ledger)):
    return ok(ledger.statistics())


@api.post("/admin/donations/expire-pending")
def expire_pending_donations(
    older_than_minutes: int = Query(config.PENDING_DONATION_TTL_MINUTES, alias="olderThanMinutes", ge=0),
    _: CurrentUser = Depends(is_admin),
    ledger: DonationLedger = Depends(get_ledger),
):
    expired = ledger.expire_stale_pending(timedelta(minutes=older_than_minutes))
    return ok({"expired": expired}, message=f"{expired} pending donations marked as failed")


# ===== Events =====

@api.post("/event", status_code=201)
def create_event(
    payload: EventCreate,
    current_user: CurrentUser = Depends(is_ngo),
    catalog: EventCatalog = Depends(get_catalog),
):
    event = catalog.create(current_user.id, payload)
    return ok(catalog.present(event), message="Event created successfully")


@api.get("/event")
def list_events(catalog: EventCatalog = Depends(get_catalog)):
    events = [catalog.present(e) for e in catalog.list_all()]
    return ok(events, count=len(events))


@api.get("/event/my")
def my_events(current_user: CurrentUser = Depends(is_ngo), catalog: EventCatalog = Depends(get_catalog)):
    events = [catalog.present(e, with_volunteers=True) for e in catalog.list_for_owner(current_user.id)]
    return ok(events, count=len(events))


@api.get("/event/joined")
def joined_events(current_user: CurrentUser = Depends(is_volunteer), catalog: EventCatalog = Depends(get_catalog)):
    events = [catalog.present(e) for e in catalog.list_joined(current_user.id)]
    return ok(events, count=len(events))


@api.get("/event/ngo/{ngo_id}")
def events_for_ngo(ngo_id: str, catalog: EventCatalog = Depends(get_catalog)):
    events = [catalog.present(e) for e in catalog.list_for_organization(ngo_id)]
    return ok(events, count=len(events))


@api.put("/event/join/{event_id}")
def join_event(event_id: str, current_user: CurrentUser = Depends(is_volunteer), catalog: EventCatalog = Depends(get_catalog)):
    event = catalog.join(event_id, current_user.id)
    return ok(catalog.present(event), message="Joined successfully")


@api.post("/event/{event_id}/register")
def register_for_event(event_id: str, current_user: CurrentUser = Depends(is_volunteer), catalog: EventCatalog = Depends(get_catalog)):
    event = catalog.join(event_id, current_user.id)
    return ok(catalog.present(event), message="Successfully registered for event")


@api.put("/event/leave/{event_id}")
def leave_event(event_id: str, current_user: CurrentUser = Depends(is_volunteer), catalog: EventCatalog = Depends(get_catalog)):
    event = catalog.leave(event_id, current_user.id)
    return ok(catalog.present(event), message="Left event")


@api.get("/event/{event_id}")
def get_event(event_id: str, catalog: EventCatalog = Depends(get_catalog)):
    return ok(catalog.present(catalog.get(event_id), with_volunteers=True))


@api.put("/event/{event_id}")
def update_event(
    event_id: str,
    payload: EventUpdate,
    current_user: CurrentUser = Depends(is_ngo),
    catalog: EventCatalog = Depends(get_catalog),
):
    event = catalog.update(event_id, current_user.id, payload)
    return ok(catalog.present(event), message="Event updated successfully")


@api.delete("/event/{event_id}")
def delete_event(event_id: str, current_user: CurrentUser = Depends(is_ngo), catalog: EventCatalog = Depends(get_catalog)):
    catalog.delete(event_id, current_user.id)
    return ok(message="Event deleted successfully")


# ===== Payments =====

@api.post("/payment/initiate")
def initiate_payment(
    payload: PaymentInitiate,
    current_user: Optional[CurrentUser] = Depends(get_optional_user),
    payments: PaymentSimulator = Depends(get_payments),
):
    data = payments.initiate(
        payload.amount,
        payload.organization_id,
        event_id=payload.event_id,
        donor_id=current_user.id if current_user else None,
    )
    return ok(data, message="Payment initiated")


@api.post("/payment/verify")
def verify_payment(payload: PaymentVerify, payments: PaymentSimulator = Depends(get_payments)):
    donation = payments.verify(payload.donation_id, payload.payment_id, payload.order_id)
    return ok(donation, message="Payment verified successfully")


@api.get("/payment/{donation_id}")
def payment_status(donation_id: str, payments: PaymentSimulator = Depends(get_payments)):
    return ok(payments.status(donation_id))


# ===== Donations =====

@api.get("/donate")
def list_donations(
    organization_id: Optional[str] = Query(None, alias="organizationId"),
    status: Optional[str] = None,
    ledger: DonationLedger = Depends(get_ledger),
):
    donations = [ledger.present(d) for d in ledger.list_entries(organization_id=organization_id, status=status)]
    return ok(donations, count=len(donations))


@api.get("/donate/my")
def my_donations(current_user: CurrentUser = Depends(get_current_user), ledger: DonationLedger = Depends(get_ledger)):
    donations = [ledger.present(d) for d in ledger.list_entries(donor_id=current_user.id)]
    return ok(donations, count=len(donations))


@api.get("/donate/{donation_id}")
def get_donation(donation_id: str, ledger: DonationLedger = Depends(get_ledger)):
    return ok(ledger.present(ledger.get(donation_id)))


app.include_router(api)


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", config.PORT))
    uvicorn.run(app, host="0.0.0.0", port=port)
