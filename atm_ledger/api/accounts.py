"""
Login and account inquiry endpoints.
"""

from fastapi import APIRouter, Depends

from atm_ledger.api.dependencies import get_ledger_service, get_session_service
from atm_ledger.schemas.account import AccountResponse, LoginRequest
from atm_ledger.services.ledger_service import LedgerService
from atm_ledger.services.session_service import SessionService

router = APIRouter(tags=["Accounts"])


@router.post("/session", response_model=AccountResponse)
def login(
    request: LoginRequest,
    service: SessionService = Depends(get_session_service),
):
    """
    Exchange a user id and PIN for the account they open.

    The returned account id is what the client passes to every
    other endpoint.
    """
    account = service.login(request.user_id, request.pin)
    return AccountResponse.from_snapshot(account)


@router.get("/accounts/{account_id}", response_model=AccountResponse)
def get_account(
    account_id: str,
    service: LedgerService = Depends(get_ledger_service),
):
    """Get account details and current balance."""
    return AccountResponse.from_snapshot(service.get_account(account_id))
