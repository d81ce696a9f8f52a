"""
Tagged ledger errors and failure classification.

Classification happens here, at the boundary closest to the raw RPC
response, so callers branch on ``LedgerError.kind`` instead of matching
message text.

Soroban reports contract errors only in numeric form, ``Error(Contract, #1)``.
The keeper does not assume the contract's numbering: a configured map from
code to variant name (``{1: "SlippageExceeded"}``) turns a code into a named
DomainRejection, so stats and not-found checks work on real RPC output.
Unmapped codes are not domain rejections. Variant names that appear in the
text verbatim (local test hosts, older RPCs) are still recognised.
"""

from __future__ import annotations

import re
from typing import Mapping

from ledger.contracts import FailureKind

# Contract refusals meaning "target state no longer matches the precondition".
DOMAIN_REJECTION_NAMES = frozenset({
    "SlippageExceeded",
    "OrderNotTriggered",
    "NotLiquidatable",
    "PositionNotFound",
    "OrderNotFound",
    "FundingNotDue",
})

# Reads that fail with one of these mean the record is gone.
NOT_FOUND_NAMES = frozenset({"PositionNotFound", "OrderNotFound"})

# Code -> variant name. SlippageExceeded = 1 in the market's shared Error
# enum; #20 is a known refusal whose variant is not published (name None).
DEFAULT_DOMAIN_ERROR_CODES: Mapping[int, str | None] = {1: "SlippageExceeded", 20: None}

_CONTRACT_CODE_RE = re.compile(r"Error\(Contract,\s*#(\d+)\)")


class LedgerError(Exception):
    """Base for every failure raised by a ledger client."""

    kind = FailureKind.UNKNOWN

    def __init__(self, message: str, *, tx_hash: str | None = None) -> None:
        super().__init__(message)
        self.tx_hash = tx_hash


class SimulationError(LedgerError):
    """The ledger rejected the dry run. Transient for writes, "no data" for reads."""

    kind = FailureKind.TRANSIENT


class TransientError(LedgerError):
    """Network or submission hiccup; safe to retry."""

    kind = FailureKind.TRANSIENT


class DomainRejection(LedgerError):
    """The contract refused because a business precondition no longer holds."""

    kind = FailureKind.DOMAIN_REJECTION

    def __init__(self, code: str, message: str = "", *, tx_hash: str | None = None) -> None:
        super().__init__(message or code, tx_hash=tx_hash)
        self.code = code

    @property
    def is_not_found(self) -> bool:
        return self.code in NOT_FOUND_NAMES


class TransportTimeout(LedgerError):
    """Confirmation polling ran out. The transaction may still land."""

    kind = FailureKind.TIMEOUT


class ParseError(LedgerError):
    """A decoded contract value did not have the expected shape."""


def contract_error_code(message: str) -> int | None:
    """Extract ``N`` from ``Error(Contract, #N)`` if present."""
    match = _CONTRACT_CODE_RE.search(message or "")
    return int(match.group(1)) if match else None


def classify_failure(
    message: str,
    *,
    domain_codes: Mapping[int, str | None] = DEFAULT_DOMAIN_ERROR_CODES,
    default: type[LedgerError] = TransientError,
    tx_hash: str | None = None,
) -> LedgerError:
    """Turn raw failure text into a tagged error.

    A mapped ``Error(Contract, #N)`` becomes ``DomainRejection(name)``, or
    ``DomainRejection("#N")`` when the map has no name for it. A variant name
    in the text is next; anything unrecognised becomes *default*.
    """
    text = message or ""
    code = contract_error_code(text)
    if code is not None and code in domain_codes:
        return DomainRejection(domain_codes[code] or f"#{code}", text, tx_hash=tx_hash)

    for name in sorted(DOMAIN_REJECTION_NAMES):
        if name in text:
            return DomainRejection(name, text, tx_hash=tx_hash)

    return default(text, tx_hash=tx_hash)
