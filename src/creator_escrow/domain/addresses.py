"""Format checks for wallet addresses and transaction references.

These checks are purely syntactic. Nothing here talks to a chain; a
well-formed hash may still point at a transfer that never happened, which is
why every payment claim goes through a human verification step.
"""

from __future__ import annotations

import re

from creator_escrow.domain.enums import EVM_NETWORKS, Network
from creator_escrow.domain.exceptions import InvalidClaimError

_EVM_ADDRESS = re.compile(r"^0x[a-fA-F0-9]{40}$")
_EVM_NULL_ADDRESS = "0x" + "0" * 40
_EVM_TX_HASH = re.compile(r"^0x[a-fA-F0-9]{64}$")

_BASE58 = "1-9A-HJ-NP-Za-km-z"
_SOLANA_ADDRESS = re.compile(rf"^[{_BASE58}]{{32,44}}$")
_SOLANA_SYSTEM_PROGRAM = "11111111111111111111111111111111"
_SOLANA_SIGNATURE = re.compile(rf"^[{_BASE58}]{{87,88}}$")


def parse_network(value: str, supported: list[str] | None = None) -> Network:
    """Normalize a network name, optionally restricted to ``supported``."""
    try:
        network = Network(value.strip().lower())
    except ValueError:
        raise InvalidClaimError(f"Unknown network '{value}'") from None
    if supported is not None and network.value not in supported:
        raise InvalidClaimError(f"Network '{network.value}' is not supported")
    return network


def validate_wallet_address(address: str, network: Network | str) -> str:
    """Return the trimmed address or raise InvalidClaimError."""
    network = Network(network)
    candidate = (address or "").strip()

    if network in EVM_NETWORKS:
        if not _EVM_ADDRESS.match(candidate):
            raise InvalidClaimError(f"Invalid {network.value} address format")
        if candidate.lower() == _EVM_NULL_ADDRESS:
            raise InvalidClaimError("Cannot use the null address")
        return candidate

    if not _SOLANA_ADDRESS.match(candidate):
        raise InvalidClaimError("Invalid solana address format")
    if candidate.startswith(_SOLANA_SYSTEM_PROGRAM):
        raise InvalidClaimError("Cannot use the system program address")
    return candidate


def validate_tx_ref(tx_ref: str, network: Network | str) -> str:
    """Return the trimmed transaction reference or raise InvalidClaimError."""
    network = Network(network)
    candidate = (tx_ref or "").strip()
    pattern = _EVM_TX_HASH if network in EVM_NETWORKS else _SOLANA_SIGNATURE
    if not pattern.match(candidate):
        raise InvalidClaimError(f"Invalid {network.value} transaction reference")
    return candidate
