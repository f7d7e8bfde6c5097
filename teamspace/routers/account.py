"""
Account lifecycle endpoints.

Email availability, deletion assessment, ownership transfer and account
deletion.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from teamspace.core.database import get_db
from teamspace.core.dependencies import get_current_user
from teamspace.models.user import User
from teamspace.schemas.account import (
    DeleteAccountResponse,
    DeletionAssessment,
    EmailAvailability,
    EmailAvailabilityRequest,
    OwnedOrganization,
    TransferOwnershipRequest,
)
from teamspace.schemas.auth import MessageResponse
from teamspace.services.account_service import AccountService

router = APIRouter()


def get_account_service(db: AsyncSession = Depends(get_db)) -> AccountService:
    return AccountService(db=db)


@router.post(
    "/check-email",
    response_model=EmailAvailability,
    summary="Check whether an email can be registered",
)
async def check_email(
    data: EmailAvailabilityRequest,
    service: AccountService = Depends(get_account_service),
) -> EmailAvailability:
    return await service.check_email_availability(data.email)


@router.get(
    "/owned-organizations",
    response_model=list[OwnedOrganization],
    summary="Organizations owned by the current user",
)
async def owned_organizations(
    current_user: User = Depends(get_current_user),
    service: AccountService = Depends(get_account_service),
) -> list[OwnedOrganization]:
    return await service.owned_organizations(current_user.id)


@router.get(
    "/deletion-assessment",
    response_model=DeletionAssessment,
    summary="Assess the impact of deleting the current account",
)
async def deletion_assessment(
    current_user: User = Depends(get_current_user),
    service: AccountService = Depends(get_account_service),
) -> DeletionAssessment:
    return await service.assess_deletion(current_user.id)


@router.post(
    "/transfer-ownership",
    response_model=MessageResponse,
    summary="Transfer ownership of an organization",
)
async def transfer_ownership(
    data: TransferOwnershipRequest,
    current_user: User = Depends(get_current_user),
    service: AccountService = Depends(get_account_service),
) -> MessageResponse:
    """The new owner must already be a member; the previous owner becomes an admin."""
    await service.transfer_ownership(data.organization_id, current_user.id, data.new_owner_id)
    return MessageResponse(message="Ownership transferred successfully")


@router.delete(
    "/delete-account",
    response_model=DeleteAccountResponse,
    summary="Delete the current account",
)
async def delete_account(
    current_user: User = Depends(get_current_user),
    service: AccountService = Depends(get_account_service),
) -> DeleteAccountResponse:
    """
    Soft-delete and anonymize the account.

    Fails with 409 while the user still owns organizations.
    """
    return await service.soft_delete_user(current_user.id)
