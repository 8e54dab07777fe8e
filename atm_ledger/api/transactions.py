"""
Money movement and history endpoints.

The API layer is thin — it handles HTTP concerns and delegates
all business logic to the LedgerService. Ledger failures are
turned into responses by the handler registered in main.py.
"""

from fastapi import APIRouter, Depends, Query

from atm_ledger.api.dependencies import get_ledger_service
from atm_ledger.services.ledger_service import LedgerService
from atm_ledger.schemas.transaction import (
    BalanceResponse,
    DepositRequest,
    TransactionResponse,
    TransferRequest,
    WithdrawalRequest,
)

router = APIRouter(prefix="/accounts/{account_id}", tags=["Transactions"])


@router.post("/deposit", response_model=BalanceResponse)
def deposit(
    account_id: str,
    request: DepositRequest,
    service: LedgerService = Depends(get_ledger_service),
):
    """Deposit cash into an account."""
    result = service.deposit(account_id, request.amount)
    return BalanceResponse(account_id=account_id, balance=result.balance.to_decimal())


@router.post("/withdraw", response_model=BalanceResponse)
def withdraw(
    account_id: str,
    request: WithdrawalRequest,
    service: LedgerService = Depends(get_ledger_service),
):
    """Withdraw cash from an account."""
    result = service.withdraw(account_id, request.amount)
    return BalanceResponse(account_id=account_id, balance=result.balance.to_decimal())


@router.post("/transfer", response_model=BalanceResponse)
def transfer(
    account_id: str,
    request: TransferRequest,
    service: LedgerService = Depends(get_ledger_service),
):
    """Transfer money to the account owned by another user id."""
    result = service.transfer(account_id, request.recipient_user_id, request.amount)
    return BalanceResponse(account_id=account_id, balance=result.balance.to_decimal())


@router.get("/transactions", response_model=list[TransactionResponse])
def get_transactions(
    account_id: str,
    limit: int = Query(default=50, ge=1, le=500),
    service: LedgerService = Depends(get_ledger_service),
):
    """Get ledger entries for an account, newest first."""
    entries = service.history(account_id, page_size=limit).first(limit)
    return [TransactionResponse.from_entry(e) for e in entries]
