"""
PSBT builder for simple payments from caller-selected UTXOs.

Builds the unsigned PSBT from:
- The selected UTXOs (each carries its witness UTXO for the signer)
- The requested payment outputs
- A change output when the remainder is above the dust threshold

The fee is estimated twice: once without change and once with the change
output included. There is no further iteration, so when the second
estimate pushes the planned change to the dust threshold or below, the
change output is dropped and the remainder is paid as fee instead of
being appended as a dust output.
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from psbtcore.address import InvalidAddressError, address_to_scriptpubkey
from psbtcore.constants import DUST_THRESHOLD
from psbtcore.fees import estimate_fee
from psbtcore.models import BuildRequest, Output, UtxoInput
from psbtcore.network import MAINNET, NetworkParams
from psbtcore.psbt import PSBT, TxOut


class PSBTBuildError(Exception):
    """Base class for PSBT construction failures."""


class NoInputsError(PSBTBuildError):
    def __init__(self) -> None:
        super().__init__("At least one input is required")


class NoOutputsError(PSBTBuildError):
    def __init__(self) -> None:
        super().__init__("At least one output is required")


class AllInputsDuplicateError(PSBTBuildError):
    def __init__(self) -> None:
        super().__init__("No inputs were added (all duplicates)")


class InputResolutionError(PSBTBuildError):
    def __init__(self, txid: str, vout: int, reason: str):
        self.txid = txid
        self.vout = vout
        super().__init__(f"Failed to add input {txid}:{vout}: {reason}")


class InvalidOutputAddressError(PSBTBuildError):
    def __init__(self, address: str, reason: str):
        self.address = address
        super().__init__(f"Invalid output address {address}: {reason}")


class InvalidOutputAmountError(PSBTBuildError):
    def __init__(self, address: str, amount: int):
        self.address = address
        self.amount = amount
        super().__init__(f"Invalid amount {amount} for output {address}")


class InvalidChangeAddressError(PSBTBuildError):
    def __init__(self, address: str, reason: str):
        self.address = address
        super().__init__(f"Invalid change address {address}: {reason}")


class InsufficientFundsError(PSBTBuildError):
    def __init__(self, shortfall: int):
        self.shortfall = shortfall
        super().__init__(f"Insufficient funds: need {shortfall} more satoshis")


@dataclass
class BuildResult:
    psbt: PSBT
    fee: int
    change_amount: int
    estimated_fee: int

    def to_hex(self) -> str:
        return self.psbt.to_hex()

    def to_base64(self) -> str:
        return self.psbt.to_base64()


def add_input_if_not_duplicate(psbt: PSBT, utxo: UtxoInput, network: NetworkParams) -> bool:
    """
    Append `utxo` as an input unless the same outpoint is already present.

    Returns:
        True if the input was added, False if it was a duplicate

    Raises:
        InputResolutionError: the spending script could not be resolved
    """
    txid = utxo.txid.lower()
    for existing in psbt.tx_inputs:
        if existing.hash[::-1].hex() == txid and existing.index == utxo.vout:
            return False

    prev_hash = bytes.fromhex(txid)[::-1]

    try:
        if utxo.script_pk:
            script = bytes.fromhex(utxo.script_pk)
        else:
            script = address_to_scriptpubkey(utxo.address, network)
    except ValueError as e:
        raise InputResolutionError(utxo.txid, utxo.vout, str(e)) from e

    psbt.add_input(prev_hash, utxo.vout, witness_utxo=TxOut(value=utxo.value, script=script))
    return True


class PSBTBuilder:
    """Builds unsigned PSBTs for one network."""

    def __init__(self, network: NetworkParams = MAINNET, dust_threshold: int = DUST_THRESHOLD):
        self.network = network
        self.dust_threshold = dust_threshold

    def build(
        self,
        inputs: list[UtxoInput],
        outputs: list[Output],
        change_address: str,
        fee_rate: float = 1.0,
    ) -> BuildResult:
        """
        Build an unsigned PSBT.

        Args:
            inputs: Selected UTXOs; repeated outpoints are added once
            outputs: Requested payments
            change_address: Destination for change above the dust threshold
            fee_rate: Fee rate in sat/vB

        Returns:
            BuildResult with the PSBT, the fee paid and the change amount
        """
        if not inputs:
            raise NoInputsError()
        if not outputs:
            raise NoOutputsError()

        psbt = PSBT()

        added: list[UtxoInput] = []
        for utxo in inputs:
            if add_input_if_not_duplicate(psbt, utxo, self.network):
                added.append(utxo)
            else:
                logger.warning(f"Skipping duplicate input {utxo.outpoint}")

        if not added:
            raise AllInputsDuplicateError()

        total_in = sum(u.value for u in added)
        total_out = sum(o.amount for o in outputs)

        for out in outputs:
            if out.amount < 0:
                raise InvalidOutputAmountError(out.address, out.amount)
            try:
                script = address_to_scriptpubkey(out.address, self.network)
            except InvalidAddressError as e:
                raise InvalidOutputAddressError(out.address, e.reason) from e
            psbt.add_output(script, out.amount)

        provisional_fee = estimate_fee(added, outputs, fee_rate)
        provisional_change = total_in - total_out - provisional_fee
        logger.debug(
            f"Provisional pass: {len(added)} inputs, {len(outputs)} outputs, "
            f"fee={provisional_fee}, change={provisional_change}"
        )

        if provisional_change < 0:
            raise InsufficientFundsError(abs(provisional_change))

        change_script: bytes | None = None
        if provisional_change > self.dust_threshold:
            try:
                change_script = address_to_scriptpubkey(change_address, self.network)
            except InvalidAddressError as e:
                raise InvalidChangeAddressError(change_address, e.reason) from e

        final_outputs = list(outputs)
        if change_script is not None:
            final_outputs.append(Output(address=change_address, amount=provisional_change))
        final_fee = estimate_fee(added, final_outputs, fee_rate)

        change_amount = 0
        if change_script is not None:
            change_amount = total_in - total_out - final_fee
            if change_amount > self.dust_threshold:
                psbt.add_output(change_script, change_amount)
            else:
                # Adding change pushed it under the dust threshold; leave it to the fee
                logger.debug(f"Change {change_amount} fell to dust after fee recomputation")
                change_amount = 0

        fee = total_in - total_out - change_amount
        logger.info(
            f"Built PSBT: {len(added)} inputs, {len(psbt.tx_outputs)} outputs, "
            f"fee={fee} sats, change={change_amount} sats"
        )
        return BuildResult(
            psbt=psbt, fee=fee, change_amount=change_amount, estimated_fee=final_fee
        )


def build(request: BuildRequest) -> BuildResult:
    """Build an unsigned PSBT from a BuildRequest."""
    builder = PSBTBuilder(network=request.network)
    return builder.build(
        inputs=request.inputs,
        outputs=request.outputs,
        change_address=request.change_address,
        fee_rate=request.fee_rate,
    )
