"""
Postback API — CPA network callbacks and offer completions.

Flow:
  1. The frontend registers a pending completion (POST /create-completion)
     and passes its id to the CPA network as the tracking parameter.
  2. The network calls GET /api/postback/{network}?... when the user finishes.
  3. A pending completion is claimed (pending -> completed) with one
     conditional UPDATE, then the reward email goes out. Only the request that
     wins the claim sends mail, so redelivered postbacks never re-send.
  4. If the send fails the claim is released back to pending and the
     postback still answers success; the network is not asked to retry.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import EmailStr, Field
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from modloot.api.deps import get_email_client
from modloot.core.email import EmailClient, EmailResult, task_completed_email
from modloot.core.errors import NotFound, ValidationFailed
from modloot.core.postback import CPANetwork
from modloot.middleware.auth import AuthContext, require_admin
from modloot.models.database import get_db
from modloot.models.enums import CompletionStatus
from modloot.models.schemas import CamelModel
from modloot.models.tables import OfferCompletion, utcnow

import structlog

logger = structlog.get_logger()
router = APIRouter(prefix="/api/postback", tags=["postback"])


class CreateCompletionRequest(CamelModel):
    offer: str = Field(min_length=1, max_length=255)
    title: Optional[str] = Field(None, max_length=255)
    code: Optional[str] = Field(None, max_length=100)
    email: EmailStr


class UpdateCompletionRequest(CamelModel):
    offer: Optional[str] = Field(None, min_length=1, max_length=255)
    title: Optional[str] = Field(None, max_length=255)
    code: Optional[str] = Field(None, max_length=100)
    email: Optional[EmailStr] = None
    status: Optional[CompletionStatus] = None
    is_email_sent: Optional[bool] = None


def _completion_out(c: OfferCompletion) -> dict:
    return {
        "id": c.id,
        "offer": c.offer,
        "title": c.title,
        "code": c.code,
        "email": c.email,
        "status": c.status,
        "isEmailSent": c.is_email_sent,
        "createdAt": c.created_at,
        "updatedAt": c.updated_at,
    }


def _parse_completion_id(raw: str) -> UUID:
    try:
        return UUID(raw)
    except ValueError:
        raise ValidationFailed("Invalid offer completion ID") from None


async def _get_completion(db: AsyncSession, completion_id: UUID) -> OfferCompletion:
    completion = await db.get(OfferCompletion, completion_id)
    if completion is None:
        raise NotFound("Offer completion not found")
    return completion


async def _claim_pending(db: AsyncSession, completion_id: UUID) -> bool:
    """Move a pending completion to completed. True only for the caller that made the transition."""
    result = await db.execute(
        update(OfferCompletion)
        .where(OfferCompletion.id == completion_id, OfferCompletion.status == CompletionStatus.PENDING.value)
        .values(status=CompletionStatus.COMPLETED.value, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount == 1


async def _send_reward(db: AsyncSession, email_client: EmailClient, completion: OfferCompletion, to: str):
    message = task_completed_email(completion.offer, completion.title, completion.code)
    try:
        result = await email_client.send(to, message)
    except Exception as e:
        logger.exception("reward_email_error", completion_id=str(completion.id), to=to)
        result = EmailResult(success=False, error=str(e))

    if result.success:
        await db.execute(
            update(OfferCompletion)
            .where(OfferCompletion.id == completion.id)
            .values(is_email_sent=True, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        logger.info("reward_email_sent", completion_id=str(completion.id), to=to)
        return

    # Release the claim so a later postback can try again
    await db.execute(
        update(OfferCompletion)
        .where(OfferCompletion.id == completion.id, OfferCompletion.is_email_sent.is_(False))
        .values(status=CompletionStatus.PENDING.value, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    logger.error("reward_email_failed", completion_id=str(completion.id), to=to, error=result.error)


# --- Completions (static paths first) ---

@router.get("/completions")
async def list_completions(
    email: Optional[str] = None,
    is_email_sent: Optional[bool] = Query(None, alias="isEmailSent"),
    auth: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    conditions = []
    if email:
        conditions.append(OfferCompletion.email == email.strip().lower())
    if is_email_sent is not None:
        conditions.append(OfferCompletion.is_email_sent.is_(is_email_sent))

    result = await db.execute(
        select(OfferCompletion).where(*conditions).order_by(OfferCompletion.created_at.desc())
    )
    completions = [_completion_out(c) for c in result.scalars().all()]
    return {"success": True, "count": len(completions), "data": completions}


@router.post("/create-completion")
async def create_completion(body: CreateCompletionRequest, db: AsyncSession = Depends(get_db)):
    email = str(body.email).strip().lower()
    offer = body.offer.strip()

    result = await db.execute(
        select(OfferCompletion)
        .where(
            OfferCompletion.offer == offer,
            OfferCompletion.email == email,
            OfferCompletion.is_email_sent.is_(False),
        )
        .order_by(OfferCompletion.created_at.desc())
        .limit(1)
    )
    existing = result.scalar_one_or_none()
    if existing is not None:
        return {
            "success": True,
            "message": "Offer completion already exists",
            "data": _completion_out(existing),
            "id": existing.id,
        }

    completion = OfferCompletion(
        offer=offer,
        title=(body.title or "").strip() or offer,
        code=body.code.strip().upper() if body.code else None,
        email=email,
    )
    db.add(completion)
    await db.commit()
    await db.refresh(completion)

    logger.info("offer_completion_created", completion_id=str(completion.id), offer=offer)
    return JSONResponse(
        status_code=201,
        content=jsonable_encoder({
            "success": True,
            "message": "Offer completion created successfully",
            "data": _completion_out(completion),
            "id": completion.id,
        }),
    )


@router.delete("/delete-all-completion")
async def delete_all_completions(
    auth: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(delete(OfferCompletion))
    await db.commit()
    if result.rowcount == 0:
        raise NotFound("No offer completions found to delete")

    logger.info("offer_completions_deleted", count=result.rowcount, by=auth.email)
    return {
        "success": True,
        "message": f"Successfully deleted {result.rowcount} offer completions",
        "deletedCount": result.rowcount,
    }


@router.get("/completions/{completion_id}")
async def get_completion(
    completion_id: str,
    auth: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    completion = await _get_completion(db, _parse_completion_id(completion_id))
    return {"success": True, "data": _completion_out(completion)}


@router.put("/completions/{completion_id}")
async def update_completion(
    completion_id: str,
    body: UpdateCompletionRequest,
    auth: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    completion = await _get_completion(db, _parse_completion_id(completion_id))
    values = body.model_dump(exclude_unset=True)
    if values.get("email"):
        values["email"] = str(values["email"]).strip().lower()
    if values.get("code"):
        values["code"] = values["code"].strip().upper()
    if values.get("status"):
        values["status"] = values["status"].value
    for name, value in values.items():
        if value is None and name in ("offer", "email", "status", "is_email_sent"):
            raise ValidationFailed(f"{name} cannot be null")
        setattr(completion, name, value)
    await db.commit()
    await db.refresh(completion)
    return {"success": True, "message": "Offer completion updated", "data": _completion_out(completion)}


@router.delete("/completions/{completion_id}")
async def delete_completion(
    completion_id: str,
    auth: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    completion = await _get_completion(db, _parse_completion_id(completion_id))
    await db.delete(completion)
    await db.commit()
    return {"success": True, "message": "Offer completion deleted"}


# --- Network callback ---

@router.get("/{network}")
async def universal_postback(
    network: str,
    request: Request,
    email_client: EmailClient = Depends(get_email_client),
    db: AsyncSession = Depends(get_db),
):
    cpa = CPANetwork.parse(network)
    fields = cpa.extract(request.query_params)
    logger.info("postback_received", network=cpa.value, offer_id=fields.offer_id,
                completion_id=fields.completion_id, ip=fields.ip)

    if not fields.email or not fields.payout:
        raise ValidationFailed("Incomplete request: email and payout are required")

    completion_id = fields.completion_uuid
    if completion_id is None:
        # Answered as 201 so networks do not treat it as a delivery failure
        return JSONResponse(
            status_code=201,
            content={"success": False, "message": "Invalid or missing offer completion ID"},
        )

    completion = await _get_completion(db, completion_id)

    if completion.status == CompletionStatus.PENDING.value and await _claim_pending(db, completion.id):
        await _send_reward(db, email_client, completion, fields.email)
    else:
        logger.info("postback_already_processed", completion_id=str(completion.id), status=completion.status)

    return {
        "success": True,
        "message": "Postback processed successfully",
        "data": {
            "offerid": fields.offer_id,
            "payout": fields.payout,
            "network": network,
            "offername": fields.offer_name or f"An offer from {network}",
        },
    }
