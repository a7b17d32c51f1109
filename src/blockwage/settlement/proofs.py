"""Payment proof codec and attestation.

Wire layout (big-endian)::

    offset  size  field
    0       20    employee address
    20      32    period id (uint256)
    52      32    amount (uint256)
    84      *     trailer (ignored by the decoder, may carry attestation)

Proofs arrive as raw bytes, ``0x``-prefixed hex, or base64 text. The
proof id is the SHA-256 of the raw bytes, trailer included.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import re
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from blockwage.settlement.errors import (
    InvalidAmountError,
    InvalidEmployeeIdError,
    MalformedProofError,
)

ADDRESS_LENGTH = 20
WORD_LENGTH = 32
MIN_PROOF_LENGTH = ADDRESS_LENGTH + 2 * WORD_LENGTH
UINT256_MAX = 2**256 - 1
ZERO_ADDRESS = "0x" + "00" * ADDRESS_LENGTH

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def normalize_employee_id(value: str) -> str:
    """Validate a 20-byte hex address and return it lower-cased."""
    if not isinstance(value, str) or not _ADDRESS_RE.match(value.strip()):
        raise InvalidEmployeeIdError(value)
    normalized = value.strip().lower()
    if normalized == ZERO_ADDRESS:
        raise InvalidEmployeeIdError(value)
    return normalized


def require_positive_uint256(value: int, field: str = "amount") -> int:
    """Return value if it is an int in [1, 2**256 - 1]."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmountError(value, field)
    if value <= 0 or value > UINT256_MAX:
        raise InvalidAmountError(value, field)
    return value


def proof_bytes(proof: bytes | bytearray | str) -> bytes:
    """Decode a proof given as bytes, 0x-hex or base64."""
    if isinstance(proof, (bytes, bytearray)):
        return bytes(proof)
    if not isinstance(proof, str):
        raise MalformedProofError(f"unsupported proof type {type(proof).__name__}")

    text = proof.strip()
    if text.startswith(("0x", "0X")):
        try:
            return bytes.fromhex(text[2:])
        except ValueError:
            raise MalformedProofError("invalid hex encoding") from None
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError):
        raise MalformedProofError("invalid base64 encoding") from None


def proof_hash(raw: bytes) -> str:
    """Stable identifier of a proof: SHA-256 hex of the raw bytes."""
    return hashlib.sha256(raw).hexdigest()


@dataclass(frozen=True)
class DecodedProof:
    """Fields extracted from a structurally valid proof."""

    employee_id: str
    period_id: int
    amount: int
    trailer: bytes
    raw: bytes

    @property
    def proof_hash(self) -> str:
        return proof_hash(self.raw)

    @property
    def payload(self) -> bytes:
        """The fixed-size part of the proof, without trailer."""
        return self.raw[:MIN_PROOF_LENGTH]


def decode_proof(proof: bytes | bytearray | str) -> DecodedProof:
    """Decode and structurally validate a proof.

    Raises:
        MalformedProofError: Input too short, badly encoded, or with a zero field
    """
    raw = proof_bytes(proof)
    if len(raw) < MIN_PROOF_LENGTH:
        raise MalformedProofError(
            f"expected at least {MIN_PROOF_LENGTH} bytes, got {len(raw)}"
        )

    employee_id = "0x" + raw[:ADDRESS_LENGTH].hex()
    period_id = int.from_bytes(raw[ADDRESS_LENGTH:ADDRESS_LENGTH + WORD_LENGTH], "big")
    amount = int.from_bytes(raw[ADDRESS_LENGTH + WORD_LENGTH:MIN_PROOF_LENGTH], "big")

    if employee_id == ZERO_ADDRESS:
        raise MalformedProofError("employee address is zero")
    if period_id == 0:
        raise MalformedProofError("period id is zero")
    if amount == 0:
        raise MalformedProofError("amount is zero")

    return DecodedProof(
        employee_id=employee_id,
        period_id=period_id,
        amount=amount,
        trailer=raw[MIN_PROOF_LENGTH:],
        raw=raw,
    )


def _uint256_word(value: int, field: str) -> bytes:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidAmountError(value, field)
    if value > UINT256_MAX:
        raise InvalidAmountError(value, field)
    return value.to_bytes(WORD_LENGTH, "big")


def encode_proof(
    employee_id: str,
    period_id: int,
    amount: int,
    trailer: bytes = b"",
) -> bytes:
    """Build proof bytes in the wire layout."""
    address = bytes.fromhex(normalize_employee_id(employee_id)[2:])
    return (
        address
        + _uint256_word(period_id, "period_id")
        + _uint256_word(amount, "amount")
        + bytes(trailer)
    )


@runtime_checkable
class ProofAttestor(Protocol):
    """Checks that a structurally valid proof was issued by a trusted party."""

    def verify(self, proof: DecodedProof) -> bool:
        ...


class HmacProofAttestor:
    """Shared-secret attestation.

    The first 32 trailer bytes must be HMAC-SHA256(secret, payload).
    """

    tag_length = hashlib.sha256().digest_size

    def __init__(self, secret: str | bytes):
        if not secret:
            raise ValueError("Attestation secret must not be empty")
        self._key = secret.encode() if isinstance(secret, str) else bytes(secret)

    def sign(self, payload: bytes) -> bytes:
        return hmac.new(self._key, payload[:MIN_PROOF_LENGTH], hashlib.sha256).digest()

    def attach(self, payload: bytes) -> bytes:
        """Return payload followed by its attestation tag."""
        payload = payload[:MIN_PROOF_LENGTH]
        return payload + self.sign(payload)

    def verify(self, proof: DecodedProof) -> bool:
        tag = proof.trailer[:self.tag_length]
        if len(tag) != self.tag_length:
            return False
        return hmac.compare_digest(tag, self.sign(proof.payload))
