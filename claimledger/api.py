"""
HTTP adapter for the claim ledger.

Exposes the ledger operations to a presentation layer. The calling principal
arrives in the X-Principal header; authenticating it is the caller's
concern. Failures map to status codes with the FailureCode as detail.
"""

import logging
from typing import Optional

from fastapi import FastAPI, Header, HTTPException

from .errors import (
    ClaimLedgerError,
    ClaimNotFoundError,
    DelayIntegrityError,
    ProofVerificationError,
)
from .handles import ExternalCiphertext
from .ledger import ClaimLedger, build_ledger
from .logging_config import set_request_id
from .models import (
    ClaimCountResponse,
    ClaimExistsResponse,
    ClaimResponse,
    HandleResponse,
    ProtocolResponse,
    SubmitClaimRequest,
    SubmitClaimResponse,
)

logger = logging.getLogger(__name__)

_STATUS = {
    ClaimNotFoundError: 404,
    ProofVerificationError: 400,
    DelayIntegrityError: 503,
}


def _raise_http(e: ClaimLedgerError):
    raise HTTPException(_STATUS.get(type(e), 400), e.code.value) from e


def _principal(x_principal: Optional[str]) -> str:
    if not x_principal:
        raise HTTPException(401, "MISSING_PRINCIPAL")
    return x_principal


def create_app(ledger: Optional[ClaimLedger] = None) -> FastAPI:
    ledger = ledger or build_ledger()
    app = FastAPI(title="claimledger")
    app.state.ledger = ledger

    @app.middleware("http")
    async def _request_id(request, call_next):
        set_request_id(request.headers.get("x-request-id"))
        return await call_next(request)

    @app.get("/protocol", response_model=ProtocolResponse)
    def protocol():
        return ProtocolResponse(
            confidential_protocol_id=ledger.confidential_protocol_id,
            ledger_address=ledger.address,
        )

    @app.post("/claims", response_model=SubmitClaimResponse)
    def submit_claim(req: SubmitClaimRequest, x_principal: Optional[str] = Header(None)):
        submitter = _principal(x_principal)
        try:
            proof = bytes.fromhex(req.input_proof[2:] if req.input_proof.startswith("0x") else req.input_proof)
        except ValueError:
            raise HTTPException(400, ProofVerificationError.code.value)
        try:
            claim_id = ledger.submit_claim(
                ExternalCiphertext.from_hex(req.loss_amount),
                ExternalCiphertext.from_hex(req.risk_level),
                proof,
                submitter,
            )
        except ClaimLedgerError as e:
            _raise_http(e)
        return SubmitClaimResponse(claim_id=claim_id)

    @app.post("/claims/{claim_id}/evaluate", status_code=204)
    def evaluate_claim(claim_id: int, x_principal: Optional[str] = Header(None)):
        caller = _principal(x_principal)
        try:
            ledger.evaluate_claim(claim_id, caller)
        except ClaimLedgerError as e:
            _raise_http(e)

    @app.get("/claims/count", response_model=ClaimCountResponse)
    def claim_count():
        return ClaimCountResponse(count=ledger.get_claim_count())

    @app.get("/claims/{claim_id}", response_model=ClaimResponse)
    def get_claim(claim_id: int):
        try:
            view = ledger.get_claim(claim_id)
        except ClaimLedgerError as e:
            _raise_http(e)
        return ClaimResponse(
            claim_id=claim_id,
            loss_amount=view.loss_amount.hex(),
            risk_level=view.risk_level.hex(),
            payout=view.payout.hex(),
        )

    @app.get("/claims/{claim_id}/exists", response_model=ClaimExistsResponse)
    def claim_exists(claim_id: int):
        return ClaimExistsResponse(claim_id=claim_id, exists=ledger.claim_exists(claim_id))

    def _handle_route(getter):
        def route(claim_id: int):
            try:
                handle = getter(claim_id)
            except ClaimLedgerError as e:
                _raise_http(e)
            return HandleResponse(claim_id=claim_id, handle=handle.hex())
        return route

    app.get("/claims/{claim_id}/loss_amount", response_model=HandleResponse)(
        _handle_route(ledger.get_loss_amount))
    app.get("/claims/{claim_id}/risk_level", response_model=HandleResponse)(
        _handle_route(ledger.get_risk_level))
    app.get("/claims/{claim_id}/payout", response_model=HandleResponse)(
        _handle_route(ledger.get_payout))

    return app
