"""
Request models for PSBT construction, validated with Pydantic.
"""

from __future__ import annotations

from pydantic import AliasChoices, BaseModel, Field, field_validator

from psbtcore.constants import DEFAULT_FEE_RATE
from psbtcore.network import MAINNET, NetworkParams


class UtxoInput(BaseModel):
    """A previously confirmed output selected for spending."""

    txid: str = Field(..., pattern=r"^[0-9a-fA-F]{64}$")
    vout: int = Field(..., ge=0)
    value: int = Field(..., ge=0, description="Amount held by the output in sats")
    address: str = ""
    script_pk: str | None = Field(
        default=None,
        validation_alias=AliasChoices("script_pk", "scriptPk", "scriptpubkey"),
        description="Locking script hex; preferred over deriving it from address",
    )

    @field_validator("txid")
    @classmethod
    def normalize_txid(cls, v: str) -> str:
        return v.lower()

    @field_validator("script_pk")
    @classmethod
    def empty_script_is_absent(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            return None
        return v

    @property
    def outpoint(self) -> str:
        return f"{self.txid}:{self.vout}"


class Output(BaseModel):
    """A requested payment."""

    address: str
    amount: int


class BuildRequest(BaseModel):
    inputs: list[UtxoInput] = Field(default_factory=list)
    outputs: list[Output] = Field(default_factory=list)
    change_address: str
    fee_rate: float = Field(default=DEFAULT_FEE_RATE, ge=0, description="sat/vB")
    network: NetworkParams = MAINNET
