"""
Savings Ledger API

FastAPI application exposing transactions, interest rules and statements.
Amounts travel as decimal strings.
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
import uvicorn

from . import __version__
from .config import get_config
from .errors import LedgerError, StorageUnavailableError
from .ledger import Transaction
from .logging_config import setup_logging
from .rates import InterestRule
from .statements import Statement, StatementRow
from .system import LedgerSystem


# Request/response schemas
class TransactionRequest(BaseModel):
    account_id: str = Field(..., min_length=1)
    txn_date: date
    txn_type: str = Field(..., description="D for deposit, W for withdrawal")
    amount: str = Field(..., description="Decimal amount as string")


class TransactionResponse(BaseModel):
    txn_id: str
    account_id: str
    txn_date: date
    txn_type: str
    amount: str

    @classmethod
    def from_transaction(cls, transaction: Transaction) -> 'TransactionResponse':
        return cls(
            txn_id=transaction.txn_id,
            account_id=transaction.account_id,
            txn_date=transaction.txn_date,
            txn_type=transaction.txn_type.value,
            amount=str(transaction.amount)
        )


class AccountTransactionsResponse(BaseModel):
    account_id: str
    balance: str
    transactions: List[TransactionResponse]


class InterestRuleRequest(BaseModel):
    effective_date: date
    rate: str = Field(..., description="Annual percent rate as string, e.g. 1.95")
    rule_id: Optional[str] = None


class InterestRuleResponse(BaseModel):
    effective_date: date
    rate: str
    rule_id: Optional[str] = None

    @classmethod
    def from_rule(cls, rule: InterestRule) -> 'InterestRuleResponse':
        return cls(effective_date=rule.effective_date, rate=str(rule.rate), rule_id=rule.rule_id)


class StatementRowResponse(BaseModel):
    row_date: date
    txn_id: Optional[str] = None
    row_type: str
    amount: str
    balance: str

    @classmethod
    def from_row(cls, row: StatementRow) -> 'StatementRowResponse':
        return cls(
            row_date=row.row_date,
            txn_id=row.txn_id,
            row_type=row.row_type.value,
            amount=str(row.amount),
            balance=str(row.balance)
        )


class StatementResponse(BaseModel):
    account_id: str
    year: int
    month: int
    period_start: date
    period_end: date
    opening_balance: str
    closing_balance: str
    interest: str
    rows: List[StatementRowResponse]

    @classmethod
    def from_statement(cls, statement: Statement) -> 'StatementResponse':
        return cls(
            account_id=statement.account_id,
            year=statement.year,
            month=statement.month,
            period_start=statement.period_start,
            period_end=statement.period_end,
            opening_balance=str(statement.opening_balance),
            closing_balance=str(statement.closing_balance),
            interest=str(statement.interest),
            rows=[StatementRowResponse.from_row(row) for row in statement.rows]
        )


def get_ledger_system(request: Request) -> LedgerSystem:
    """Dependency returning the system bound to the running app"""
    return request.app.state.ledger_system


def _raise_for(error: LedgerError) -> None:
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"error": error.kind.value, "message": error.message}
    )


router = APIRouter()


@router.post("/transactions", status_code=status.HTTP_201_CREATED, response_model=TransactionResponse)
async def record_transaction(
    request: TransactionRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Record a deposit or withdrawal"""
    result = system.record_transaction(request.account_id, request.txn_date, request.txn_type, request.amount)
    if isinstance(result, LedgerError):
        _raise_for(result)
    return TransactionResponse.from_transaction(result)


@router.get("/accounts/{account_id}/transactions", response_model=AccountTransactionsResponse)
async def list_transactions(account_id: str, system: LedgerSystem = Depends(get_ledger_system)):
    """Full transaction history and current balance of an account"""
    if not system.ledger.account_exists(account_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Account {account_id} not found")
    return AccountTransactionsResponse(
        account_id=account_id,
        balance=str(system.ledger.balance(account_id)),
        transactions=[TransactionResponse.from_transaction(t) for t in system.ledger.transactions(account_id)]
    )


@router.put("/interest-rules", response_model=InterestRuleResponse)
async def define_interest_rule(
    request: InterestRuleRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Create the rule for a date, or replace the one already defined"""
    result = system.define_interest_rule(request.effective_date, request.rate, request.rule_id)
    if isinstance(result, LedgerError):
        _raise_for(result)
    return InterestRuleResponse.from_rule(result)


@router.get("/interest-rules", response_model=List[InterestRuleResponse])
async def list_interest_rules(system: LedgerSystem = Depends(get_ledger_system)):
    """All interest rules ordered by effective date"""
    return [InterestRuleResponse.from_rule(rule) for rule in system.interest_rules()]


@router.get("/accounts/{account_id}/statements/{year}/{month}", response_model=StatementResponse)
async def get_statement(
    account_id: str,
    year: int,
    month: int,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Monthly statement with the accrued interest line"""
    result = system.build_statement(account_id, year, month)
    if isinstance(result, LedgerError):
        _raise_for(result)
    return StatementResponse.from_statement(result)


def create_app(system: Optional[LedgerSystem] = None) -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Savings Ledger API",
        description="Account ledger with dated interest rules and monthly statements",
        version=__version__,
    )
    app.state.ledger_system = system or LedgerSystem()

    @app.exception_handler(StorageUnavailableError)
    async def storage_unavailable_handler(request: Request, exc: StorageUnavailableError):
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": {"error": "storage_unavailable", "message": str(exc)}}
        )

    app.include_router(router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "savings_ledger_api",
            "version": __version__
        }

    return app


def run_server(host: Optional[str] = None, port: Optional[int] = None) -> None:
    """Start the API with uvicorn using configured defaults"""
    config = get_config()
    setup_logging(config.log_level, log_format=config.log_format)
    uvicorn.run(create_app(), host=host or config.api_host, port=port or config.api_port)
