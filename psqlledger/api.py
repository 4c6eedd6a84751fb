"""
HTTP interface for the ledger service.

Thin FastAPI layer: decode the request, call LedgerService, encode the result.
Ledger errors map onto status codes:

- ValidationError, ConflictError -> 400
- NotFoundError                  -> 404
- ConnectivityError              -> 503

Error bodies are `{"error": "<message>"}`.
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from psqlledger.config import Settings, get_settings
from psqlledger.database.pool import ClientPool
from psqlledger.domain.models import (
    Account,
    AccountParams,
    Transaction,
    TransactionParams,
    TransactionRow,
)
from psqlledger.errors import (
    ConflictError,
    ConnectivityError,
    LedgerError,
    NotFoundError,
    PoolClosedError,
    ValidationError,
)
from psqlledger.infrastructure.db_factory import open_client_pool
from psqlledger.ledger import LedgerService
from psqlledger.utils.logging import get_logger
from psqlledger.version import SERVICE_NAME, full_version

log = get_logger(__name__)

# Routes
STATUS = "/status"
HEALTH = "/health"
ACCOUNT_BY_INDEX = "/account-by-index"
ACCOUNT_BY_EMAIL = "/account-by-email"
ACCOUNT_BY_USERNAME = "/account-by-username"
ACCOUNTS = "/accounts"
TX_BY_INDEX = "/tx-by-index"
TX_HISTORY = "/tx-history"
CREATE_ACCOUNT = "/create-account"
CREATE_TX = "/create-tx"

_ERROR_STATUS = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    ConflictError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ConnectivityError: status.HTTP_503_SERVICE_UNAVAILABLE,
    PoolClosedError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


class StatusResponse(BaseModel):
    message: str
    version: str
    service: str


class HealthResponse(BaseModel):
    version: str
    service: str
    failures: List[str]


def _error_response(code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=code, content={"error": message})


def get_ledger(request: Request) -> LedgerService:
    return request.app.state.ledger


def create_app(pool: Optional[ClientPool] = None, settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Parameters
    ----------
    pool : ClientPool | None
        Pool to serve from. The caller keeps ownership and closes it. When
        omitted, the app opens a pool from settings on startup and closes it
        on shutdown.
    settings : Settings | None
        Overrides `get_settings()` when the app opens its own pool.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if pool is not None:
            yield
            return
        owned = await open_client_pool(settings or get_settings())
        app.state.ledger = LedgerService(owned)
        log.info("Service started", extra={"version": full_version()})
        try:
            yield
        finally:
            await owned.close()
            log.info("Service stopped")

    app = FastAPI(title="psqlledger", version=full_version(), lifespan=lifespan)
    if pool is not None:
        app.state.ledger = LedgerService(pool)

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
        code = _ERROR_STATUS.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
        return _error_response(code, str(exc))

    @app.exception_handler(RequestValidationError)
    async def request_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _error_response(status.HTTP_400_BAD_REQUEST, str(exc.errors()))

    @app.middleware("http")
    async def log_http_request(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        fields = {
            "http_route": request.url.path,
            "http_method": request.method,
            "http_code": response.status_code,
            "elapsed_microseconds": int((time.perf_counter() - start) * 1_000_000),
        }
        if response.status_code > 399:
            log.warning("HTTP request", extra=fields)
        else:
            log.info("HTTP request", extra=fields)
        return response

    @app.get(STATUS, response_model=StatusResponse)
    async def status_endpoint() -> StatusResponse:
        return StatusResponse(message="OK", version=full_version(), service=SERVICE_NAME)

    @app.get(HEALTH, response_model=HealthResponse)
    async def health_endpoint(ledger: LedgerService = Depends(get_ledger)) -> JSONResponse:
        failures = await ledger.health()
        body = HealthResponse(version=full_version(), service=SERVICE_NAME, failures=failures)
        code = status.HTTP_503_SERVICE_UNAVAILABLE if failures else status.HTTP_200_OK
        return JSONResponse(status_code=code, content=body.model_dump())

    @app.get(ACCOUNT_BY_INDEX, response_model=Account)
    async def account_by_index(
        id: int = Query(...), ledger: LedgerService = Depends(get_ledger)
    ) -> Account:
        return await ledger.account_by_id(id)

    @app.get(ACCOUNT_BY_USERNAME, response_model=Account)
    async def account_by_username(
        username: str = Query(...), ledger: LedgerService = Depends(get_ledger)
    ) -> Account:
        return await ledger.account_by_username(username)

    @app.get(ACCOUNT_BY_EMAIL, response_model=Account)
    async def account_by_email(
        email: str = Query(...), ledger: LedgerService = Depends(get_ledger)
    ) -> Account:
        return await ledger.account_by_email(email)

    @app.get(ACCOUNTS, response_model=List[Account])
    async def accounts(ledger: LedgerService = Depends(get_ledger)) -> List[Account]:
        return await ledger.list_accounts()

    @app.get(TX_BY_INDEX, response_model=Transaction)
    async def tx_by_index(
        id: int = Query(...), ledger: LedgerService = Depends(get_ledger)
    ) -> Transaction:
        return await ledger.transaction_by_id(id)

    @app.get(TX_HISTORY, response_model=List[TransactionRow])
    async def tx_history(
        account_id: int = Query(...), ledger: LedgerService = Depends(get_ledger)
    ) -> List[TransactionRow]:
        return await ledger.transaction_history(account_id)

    @app.post(CREATE_ACCOUNT, response_model=Account)
    async def create_account(
        params: AccountParams, ledger: LedgerService = Depends(get_ledger)
    ) -> Account:
        return await ledger.create_account(params)

    @app.post(CREATE_TX, response_model=Transaction)
    async def create_tx(
        params: TransactionParams, ledger: LedgerService = Depends(get_ledger)
    ) -> Transaction:
        return await ledger.create_transaction(params)

    return app


__all__ = ["create_app", "get_ledger", "StatusResponse", "HealthResponse"]
