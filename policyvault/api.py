"""FastAPI application exposing the PolicyVault policy and nominee endpoints."""
from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import date
from typing import Any, Dict, Iterator, List, Optional, Union

from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .analytics import compute_analytics
from .config import Settings, load_settings
from .database import Database, normalize_identifier
from .errors import (
    InternalError,
    InvalidCredentials,
    InvalidPolicyReference,
    NotFound,
    PolicyNotFound,
    PolicyVaultError,
    ValidationError,
)
from .models import Account, Nominee, OwnerContext, Policy, PolicyStatus
from .security import BearerAuth, TokenIssuer

logger = logging.getLogger("policyvault.api")


class RegisterRequest(BaseModel):
    name: Optional[str] = Field(default=None, max_length=200)
    email: Optional[str] = Field(default=None, max_length=320)
    password: Optional[str] = None


class LoginRequest(BaseModel):
    email: Any = None
    password: Any = None


class ForgotPasswordRequest(BaseModel):
    email: Optional[str] = None


class PublicUser(BaseModel):
    name: str
    email: str


class RegisterResponse(BaseModel):
    message: str
    user: PublicUser


class LoginResponse(BaseModel):
    message: str
    token: str
    user: PublicUser


class MessageResponse(BaseModel):
    message: str


class ProfileResponse(BaseModel):
    id: str
    name: str
    email: str


class PolicyFields(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = Field(default=None, max_length=200)
    company: Optional[str] = Field(default=None, max_length=200)
    value: Optional[float] = Field(default=None, allow_inf_nan=False)
    premium: Optional[float] = Field(default=None, allow_inf_nan=False)
    start_date: Optional[date] = Field(default=None, alias="startDate")
    end_date: Optional[date] = Field(default=None, alias="endDate")
    status: Optional[PolicyStatus] = None


class NomineeCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = Field(default=None, max_length=200)
    relationship: Optional[str] = Field(default=None, max_length=100)
    email: Optional[str] = Field(default=None, max_length=320)
    phone: Optional[str] = Field(default=None, max_length=50)
    policy_id: Optional[str] = Field(default=None, alias="policyId")


class NomineeUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, max_length=200)
    relationship: Optional[str] = Field(default=None, max_length=100)
    email: Optional[str] = Field(default=None, max_length=320)
    phone: Optional[str] = Field(default=None, max_length=50)
    verified: Optional[bool] = None
    status: Optional[str] = Field(default=None, max_length=50)


class PolicyResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    legacy_id: str = Field(alias="_id")
    name: str
    company: str
    value: float
    premium: float
    start_date: str = Field(alias="startDate")
    end_date: str = Field(alias="endDate")
    status: str
    user_id: str = Field(alias="userId")


class NomineeResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    legacy_id: str = Field(alias="_id")
    name: str
    relationship: str
    email: str
    phone: str
    verified: bool
    status: str
    policy_id: str = Field(alias="policyId")
    user_id: str = Field(alias="userId")


class PolicyMutationResponse(BaseModel):
    message: str
    policy: PolicyResponse


class NomineeMutationResponse(BaseModel):
    message: str
    nominee: NomineeResponse


class ChartPoint(BaseModel):
    name: str
    value: Union[int, float]


class AnalyticsSummary(BaseModel):
    totalPolicies: int
    activePolicies: int
    totalCoverage: Union[int, float]
    totalNominees: int


class AnalyticsCharts(BaseModel):
    policyDistribution: List[ChartPoint]
    policyValues: List[ChartPoint]


class AnalyticsResponse(BaseModel):
    summary: AnalyticsSummary
    charts: AnalyticsCharts


def policy_to_response(policy: Policy) -> PolicyResponse:
    return PolicyResponse(
        id=policy.id,
        legacy_id=policy.id,
        name=policy.name,
        company=policy.company,
        value=policy.value,
        premium=policy.premium,
        start_date=policy.start_date,
        end_date=policy.end_date,
        status=policy.status,
        user_id=policy.owner_id,
    )


def nominee_to_response(nominee: Nominee) -> NomineeResponse:
    return NomineeResponse(
        id=nominee.id,
        legacy_id=nominee.id,
        name=nominee.name,
        relationship=nominee.relationship,
        email=nominee.email,
        phone=nominee.phone,
        verified=nominee.verified,
        status=nominee.status,
        policy_id=nominee.policy_id,
        user_id=nominee.owner_id,
    )


def _public_user(account: Account) -> PublicUser:
    return PublicUser(name=account.name, email=account.email)


@contextmanager
def _store_operation(message: str) -> Iterator[None]:
    """Translate store failures into :class:`InternalError` with a safe message."""

    try:
        yield
    except sqlite3.DatabaseError as exc:
        logger.exception(message)
        raise InternalError(message) from exc


def _describe_validation_error(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = str(first.get("msg", "Invalid value"))
    return f"{location}: {message}" if location else message


def create_app(
    *,
    database: Database | None = None,
    settings: Settings | None = None,
    issuer: TokenIssuer | None = None,
    initialize_database: bool = False,
) -> FastAPI:
    if settings is None:
        settings = load_settings()

    if database is None:
        database = Database(settings.database_path)
        database.initialize()
    elif initialize_database:
        database.initialize()

    if issuer is None:
        issuer = TokenIssuer(
            settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
            ttl=settings.token_ttl,
        )

    auth = BearerAuth(issuer)

    app = FastAPI(
        title="PolicyVault API",
        description="Owner-scoped storage for insurance policies and their nominees",
        version="1.0.0",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials="*" not in settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.database = database
    app.state.settings = settings
    app.state.issuer = issuer

    def get_db() -> Database:
        return database

    async def current_owner(request: Request) -> OwnerContext:
        return await auth(request)

    def get_owned_policy(
        policy_id: str,
        owner: OwnerContext = Depends(current_owner),
        db: Database = Depends(get_db),
    ) -> Policy:
        with _store_operation("Failed to fetch policy"):
            policy = db.policies.find_one_by_id_and_owner(policy_id, owner.owner_id)
        if policy is None:
            raise NotFound("Policy not found")
        return policy

    def get_owned_nominee(
        nominee_id: str,
        owner: OwnerContext = Depends(current_owner),
        db: Database = Depends(get_db),
    ) -> Nominee:
        with _store_operation("Failed to fetch nominee"):
            nominee = db.nominees.find_one_by_id_and_owner(nominee_id, owner.owner_id)
        if nominee is None:
            raise NotFound("Nominee not found")
        return nominee

    @app.get("/health")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    # ------------------------------------------------------------------
    # Account endpoints
    # ------------------------------------------------------------------
    @app.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
    async def register(payload: RegisterRequest, db: Database = Depends(get_db)) -> RegisterResponse:
        if not payload.email or not payload.email.strip():
            raise ValidationError("Email is required")
        if not payload.password:
            raise ValidationError("Password is required")

        with _store_operation("Server error during registration"):
            account = db.create_account(payload.name, payload.email, payload.password)

        logger.info("Registered account %s", account.id)
        return RegisterResponse(message="User registered successfully", user=_public_user(account))

    @app.post("/login", response_model=LoginResponse)
    async def login(payload: LoginRequest, db: Database = Depends(get_db)) -> LoginResponse:
        # Wrongly typed credentials fail the same way as wrong ones.
        if not isinstance(payload.email, str) or not isinstance(payload.password, str):
            raise InvalidCredentials()
        if not payload.email or not payload.password:
            raise InvalidCredentials()

        with _store_operation("Server error during login"):
            account = db.authenticate_account(payload.email, payload.password)
        if account is None:
            raise InvalidCredentials()

        token = issuer.issue(account)
        logger.info("Account %s logged in", account.id)
        return LoginResponse(message="Login successful", token=token, user=_public_user(account))

    @app.post("/forgot-password", response_model=MessageResponse)
    async def forgot_password(payload: ForgotPasswordRequest) -> MessageResponse:
        logger.info("Password reset requested")
        return MessageResponse(message="Password reset email sent if user exists")

    protected_router = APIRouter()

    @protected_router.get("/user/profile", response_model=ProfileResponse)
    async def read_profile(
        owner: OwnerContext = Depends(current_owner),
        db: Database = Depends(get_db),
    ) -> ProfileResponse:
        with _store_operation("Failed to fetch user profile"):
            account = db.get_account(owner.owner_id)
        if account is None:
            raise NotFound("User not found")
        return ProfileResponse(id=account.id, name=account.name, email=account.email)

    # ------------------------------------------------------------------
    # Policy endpoints
    # ------------------------------------------------------------------
    @protected_router.get("/policies", response_model=List[PolicyResponse])
    async def list_policies(
        owner: OwnerContext = Depends(current_owner),
        db: Database = Depends(get_db),
    ) -> List[PolicyResponse]:
        with _store_operation("Failed to fetch policies"):
            policies = db.policies.find_all_by_owner(owner.owner_id)
        return [policy_to_response(policy) for policy in policies]

    @protected_router.get("/policies/{policy_id}", response_model=PolicyResponse)
    async def read_policy(policy: Policy = Depends(get_owned_policy)) -> PolicyResponse:
        return policy_to_response(policy)

    @protected_router.post(
        "/policies",
        response_model=PolicyMutationResponse,
        status_code=status.HTTP_201_CREATED,
    )
    async def create_policy(
        payload: PolicyFields,
        owner: OwnerContext = Depends(current_owner),
        db: Database = Depends(get_db),
    ) -> PolicyMutationResponse:
        with _store_operation("Failed to create policy"):
            policy = db.policies.insert(owner.owner_id, payload.model_dump())

        logger.info("Account %s created policy %s", owner.owner_id, policy.id)
        return PolicyMutationResponse(message="Policy created successfully", policy=policy_to_response(policy))

    @protected_router.put("/policies/{policy_id}", response_model=PolicyMutationResponse)
    async def update_policy(
        payload: PolicyFields,
        policy: Policy = Depends(get_owned_policy),
        db: Database = Depends(get_db),
    ) -> PolicyMutationResponse:
        with _store_operation("Failed to update policy"):
            updated = db.policies.update_by_id(policy.id, payload.model_dump(exclude_unset=True))
        if updated is None:
            raise NotFound("Policy not found")
        return PolicyMutationResponse(message="Policy updated successfully", policy=policy_to_response(updated))

    @protected_router.delete("/policies/{policy_id}", response_model=MessageResponse)
    async def delete_policy(
        policy: Policy = Depends(get_owned_policy),
        db: Database = Depends(get_db),
    ) -> MessageResponse:
        with _store_operation("Failed to delete policy"):
            db.delete_policy_cascade(policy.id)
        return MessageResponse(message="Policy and associated nominees deleted successfully")

    @protected_router.get("/policies/{policy_id}/nominees", response_model=List[NomineeResponse])
    async def list_policy_nominees(
        policy: Policy = Depends(get_owned_policy),
        db: Database = Depends(get_db),
    ) -> List[NomineeResponse]:
        with _store_operation("Failed to fetch nominees"):
            nominees = db.nominees.find_all_by_policy(policy.id)
        return [nominee_to_response(nominee) for nominee in nominees]

    # ------------------------------------------------------------------
    # Nominee endpoints
    # ------------------------------------------------------------------
    @protected_router.get("/nominees", response_model=List[NomineeResponse])
    async def list_nominees(
        owner: OwnerContext = Depends(current_owner),
        db: Database = Depends(get_db),
    ) -> List[NomineeResponse]:
        with _store_operation("Failed to fetch nominees"):
            nominees = db.nominees.find_all_by_owner(owner.owner_id)
        return [nominee_to_response(nominee) for nominee in nominees]

    @protected_router.post(
        "/nominees",
        response_model=NomineeMutationResponse,
        status_code=status.HTTP_201_CREATED,
    )
    async def create_nominee(
        payload: NomineeCreateRequest,
        owner: OwnerContext = Depends(current_owner),
        db: Database = Depends(get_db),
    ) -> NomineeMutationResponse:
        policy_id = normalize_identifier(payload.policy_id)
        if policy_id is None:
            raise InvalidPolicyReference()

        with _store_operation("Failed to create nominee"):
            policy = db.policies.find_one_by_id_and_owner(policy_id, owner.owner_id)
            if policy is None:
                raise PolicyNotFound()
            fields = payload.model_dump(exclude={"policy_id"})
            fields["policy_id"] = policy.id
            nominee = db.nominees.insert(owner.owner_id, fields)

        logger.info("Account %s added nominee %s to policy %s", owner.owner_id, nominee.id, policy.id)
        return NomineeMutationResponse(message="Nominee added successfully", nominee=nominee_to_response(nominee))

    @protected_router.put("/nominees/{nominee_id}", response_model=NomineeMutationResponse)
    async def update_nominee(
        payload: NomineeUpdateRequest,
        nominee: Nominee = Depends(get_owned_nominee),
        db: Database = Depends(get_db),
    ) -> NomineeMutationResponse:
        updates = payload.model_dump(exclude_unset=True)
        # Verification is one-way; an update may confirm it but never revoke it.
        if not updates.get("verified"):
            updates.pop("verified", None)

        with _store_operation("Failed to update nominee"):
            updated = db.nominees.update_by_id(nominee.id, updates)
        if updated is None:
            raise NotFound("Nominee not found")
        return NomineeMutationResponse(message="Nominee updated successfully", nominee=nominee_to_response(updated))

    @protected_router.patch("/nominees/{nominee_id}/verify", response_model=NomineeMutationResponse)
    async def verify_nominee(
        nominee: Nominee = Depends(get_owned_nominee),
        db: Database = Depends(get_db),
    ) -> NomineeMutationResponse:
        with _store_operation("Failed to verify nominee"):
            updated = db.nominees.update_by_id(nominee.id, {"verified": True})
        if updated is None:
            raise NotFound("Nominee not found")
        return NomineeMutationResponse(message="Nominee verified successfully", nominee=nominee_to_response(updated))

    @protected_router.delete("/nominees/{nominee_id}", response_model=MessageResponse)
    async def delete_nominee(
        nominee: Nominee = Depends(get_owned_nominee),
        db: Database = Depends(get_db),
    ) -> MessageResponse:
        with _store_operation("Failed to delete nominee"):
            db.nominees.delete_by_id(nominee.id)
        return MessageResponse(message="Nominee deleted successfully")

    @protected_router.get("/analytics", response_model=AnalyticsResponse)
    async def read_analytics(
        owner: OwnerContext = Depends(current_owner),
        db: Database = Depends(get_db),
    ) -> Dict[str, Dict[str, object]]:
        with _store_operation("Failed to generate analytics"):
            policies = db.policies.find_all_by_owner(owner.owner_id)
            nominees = db.nominees.find_all_by_owner(owner.owner_id)
        return compute_analytics(policies, nominees)

    app.include_router(protected_router)

    @app.exception_handler(PolicyVaultError)
    async def handle_policyvault_error(_: Request, exc: PolicyVaultError):
        return JSONResponse(status_code=int(exc.status_code), content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(_: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": _describe_validation_error(exc)},
        )

    return app


__all__ = ["create_app", "nominee_to_response", "policy_to_response"]
