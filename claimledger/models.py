from pydantic import BaseModel, Field


class SubmitClaimRequest(BaseModel):
    loss_amount: str = Field(..., description="0x-prefixed external ciphertext handle")
    risk_level: str = Field(..., description="0x-prefixed external ciphertext handle")
    input_proof: str = Field(..., description="hex-encoded input proof")


class SubmitClaimResponse(BaseModel):
    claim_id: int


class ClaimResponse(BaseModel):
    claim_id: int
    loss_amount: str
    risk_level: str
    payout: str


class HandleResponse(BaseModel):
    claim_id: int
    handle: str


class ClaimCountResponse(BaseModel):
    count: int


class ClaimExistsResponse(BaseModel):
    claim_id: int
    exists: bool


class ProtocolResponse(BaseModel):
    confidential_protocol_id: int
    ledger_address: str
