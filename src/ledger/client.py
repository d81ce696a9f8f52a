"""
Ledger client: invoke a named contract entry point as a read or a write.

Implements the LedgerClient protocol over Soroban RPC using stellar-sdk.

    read:  load account -> build -> simulate -> decode return value
    write: load account -> build -> simulate -> prepare -> sign -> submit
           -> poll to terminal (ledger.confirmation)

Each confirmed write consumes one sequence number on the signer's account,
so writes from one client must never run concurrently. The client does not
enforce that; keeper.runner serializes every write behind a single lock.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Protocol, Sequence

from ledger.codec import contract_error_from_event, decode_reward
from ledger.confirmation import (
    DEFAULT_MAX_POLL_ATTEMPTS,
    DEFAULT_POLL_INTERVAL,
    TxState,
    status_name,
    wait_for_confirmation,
)
from ledger.contracts import ExecutionResult
from ledger.errors import (
    DEFAULT_DOMAIN_ERROR_CODES,
    LedgerError,
    ParseError,
    SimulationError,
    TransientError,
    TransportTimeout,
    classify_failure,
)

logger = logging.getLogger("keeper.ledger")

READ_BASE_FEE = 100
READ_TIMEOUT_SECONDS = 30
DEFAULT_WRITE_BASE_FEE = 10_000_000
DEFAULT_TX_TIMEOUT_SECONDS = 300


@dataclass(frozen=True)
class ScArg:
    """Typed contract argument; converted to an XDR value by the client."""

    type: str  # "u32" | "u64" | "i128" | "symbol" | "address" | "bool"
    value: Any


def u64(value: int) -> ScArg:
    return ScArg("u64", int(value))


def i128(value: int) -> ScArg:
    return ScArg("i128", int(value))


def symbol(value: str) -> ScArg:
    return ScArg("symbol", value)


def address(value: str) -> ScArg:
    return ScArg("address", value)


class LedgerClient(Protocol):
    """Protocol for ledger clients. Tests implement it with an in-memory ledger."""

    @property
    def public_key(self) -> str:
        ...

    def read_call(self, contract_id: str, method: str, args: Sequence[ScArg] = ()) -> Any:
        """Simulate only; return the decoded native value.

        Raises SimulationError (or DomainRejection for recognised contract errors).
        """
        ...

    def write_call(self, contract_id: str, method: str, args: Sequence[ScArg] = ()) -> ExecutionResult:
        """Submit and confirm; never raises for ledger failures."""
        ...


class SorobanLedgerClient:
    """
    LedgerClient backed by a Soroban RPC endpoint.

    Uses SorobanServer / TransactionBuilder / Keypair from stellar-sdk.
    Secret key via constructor (typically from KeeperConfig, sourced from env vars).
    """

    def __init__(
        self,
        rpc_url: str,
        network_passphrase: str,
        secret_key: str,
        *,
        base_fee: int = DEFAULT_WRITE_BASE_FEE,
        tx_timeout: int = DEFAULT_TX_TIMEOUT_SECONDS,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_poll_attempts: int = DEFAULT_MAX_POLL_ATTEMPTS,
        domain_error_codes: Mapping[int, str | None] = DEFAULT_DOMAIN_ERROR_CODES,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not secret_key:
            raise ValueError(
                "Keeper secret key is required. Set the KEEPER_SECRET_KEY environment variable."
            )
        try:
            from stellar_sdk import Keypair, SorobanServer
            from stellar_sdk.exceptions import SdkError
        except ImportError:
            raise ImportError(
                "stellar-sdk is required for SorobanLedgerClient. "
                "Install with: pip install stellar-sdk"
            ) from None

        self._keypair = Keypair.from_secret(secret_key)
        self._server = SorobanServer(rpc_url)
        self._sdk_error = SdkError
        self._rpc_url = rpc_url
        self._passphrase = network_passphrase
        self._base_fee = base_fee
        self._tx_timeout = tx_timeout
        self._poll_interval = poll_interval
        self._max_poll_attempts = max_poll_attempts
        self._domain_codes = dict(domain_error_codes)
        self._sleep = sleep

    @property
    def public_key(self) -> str:
        return self._keypair.public_key

    @property
    def rpc_url(self) -> str:
        return self._rpc_url

    def health(self) -> str:
        """RPC health status string (``"healthy"`` when the node is up)."""
        return str(self._server.get_health().status)

    # ---------- read ----------

    def read_call(self, contract_id: str, method: str, args: Sequence[ScArg] = ()) -> Any:
        try:
            tx = self._build(contract_id, method, args, fee=READ_BASE_FEE, timeout=READ_TIMEOUT_SECONDS)
            sim = self._server.simulate_transaction(tx)
        except self._sdk_error as exc:
            raise TransientError(f"{method}: {exc}") from exc

        if sim.error:
            raise self._classify(f"{method}: simulation failed: {sim.error}", SimulationError)
        if not sim.results:
            raise SimulationError(f"{method}: no result from simulation")
        return self._native(sim.results[0].xdr)

    # ---------- write ----------

    def write_call(self, contract_id: str, method: str, args: Sequence[ScArg] = ()) -> ExecutionResult:
        try:
            return self._write(contract_id, method, args)
        except LedgerError as exc:
            logger.warning("%s failed (%s): %s", method, exc.kind.value, exc)
            return ExecutionResult.from_error(exc)
        except self._sdk_error as exc:
            err = self._classify(f"{method}: {exc}", TransientError)
            logger.warning("%s failed (%s): %s", method, err.kind.value, err)
            return ExecutionResult.from_error(err)

    def _write(self, contract_id: str, method: str, args: Sequence[ScArg]) -> ExecutionResult:
        from stellar_sdk.soroban_rpc import SendTransactionStatus

        tx = self._build(contract_id, method, args, fee=self._base_fee, timeout=self._tx_timeout)
        sim = self._server.simulate_transaction(tx)
        if sim.error:
            raise self._classify(f"{method}: simulation failed: {sim.error}", SimulationError)

        prepared = self._server.prepare_transaction(tx, sim)
        prepared.sign(self._keypair)

        sent = self._server.send_transaction(prepared)
        send_status = status_name(sent.status)
        if send_status == status_name(SendTransactionStatus.ERROR):
            raise self._classify(
                f"{method}: transaction rejected on submit: {sent.error_result_xdr}",
                TransientError,
                tx_hash=sent.hash,
            )
        if send_status == status_name(SendTransactionStatus.TRY_AGAIN_LATER):
            raise TransientError(f"{method}: RPC asked to try again later", tx_hash=sent.hash)

        logger.debug("%s submitted: %s (%s)", method, sent.hash, send_status)
        confirmation = wait_for_confirmation(
            self._server.get_transaction,
            sent.hash,
            poll_interval=self._poll_interval,
            max_attempts=self._max_poll_attempts,
            sleep=self._sleep,
        )

        if confirmation.state is TxState.TIMED_OUT:
            raise TransportTimeout(
                f"{method}: no terminal status after {confirmation.polls} polls (outcome unknown)",
                tx_hash=sent.hash,
            )
        if confirmation.state is TxState.REJECTED:
            code = self._failure_code(confirmation.response)
            detail = f"Error(Contract, #{code})" if code is not None else ""
            raise self._classify(
                f"{method}: transaction {confirmation.status}: {detail} "
                f"{getattr(confirmation.response, 'result_xdr', '')}",
                LedgerError,
                tx_hash=sent.hash,
            )

        return ExecutionResult.ok(sent.hash, self._reward(confirmation.response))

    # ---------- helpers ----------

    def _build(self, contract_id: str, method: str, args: Sequence[ScArg], *, fee: int, timeout: int):
        from stellar_sdk import TransactionBuilder

        account = self._server.load_account(self.public_key)
        return (
            TransactionBuilder(account, self._passphrase, base_fee=fee)
            .append_invoke_contract_function_op(
                contract_id=contract_id,
                function_name=method,
                parameters=[self._to_scval(a) for a in args],
            )
            .set_timeout(timeout)
            .build()
        )

    def _classify(
        self, message: str, default: type[LedgerError], tx_hash: str | None = None
    ) -> LedgerError:
        return classify_failure(message, domain_codes=self._domain_codes, default=default, tx_hash=tx_hash)

    @staticmethod
    def _to_scval(arg: ScArg):
        from stellar_sdk import scval

        converters = {
            "u32": scval.to_uint32,
            "u64": scval.to_uint64,
            "i128": scval.to_int128,
            "symbol": scval.to_symbol,
            "address": scval.to_address,
            "bool": scval.to_bool,
        }
        if arg.type not in converters:
            raise ValueError(f"Unsupported argument type {arg.type!r}")
        return converters[arg.type](arg.value)

    @staticmethod
    def _native(result_xdr: str) -> Any:
        from stellar_sdk import scval
        from stellar_sdk import xdr as stellar_xdr

        try:
            return scval.to_native(stellar_xdr.SCVal.from_xdr(result_xdr))
        except (TypeError, ValueError) as exc:
            raise ParseError(f"could not decode result: {exc}") from exc

    @staticmethod
    def _meta_body(response: Any):
        """Soroban part (v3 or v4) of the transaction meta, or None."""
        meta_xdr = getattr(response, "result_meta_xdr", None)
        if not meta_xdr:
            return None
        from stellar_sdk import xdr as stellar_xdr

        meta = stellar_xdr.TransactionMeta.from_xdr(meta_xdr)
        return meta.v4 if meta.v == 4 else meta.v3

    def _failure_code(self, response: Any) -> int | None:
        """Contract error code carried by a failed transaction's diagnostic events."""
        from stellar_sdk import xdr as stellar_xdr

        events: list = []
        try:
            for raw in getattr(response, "diagnostic_events_xdr", None) or []:
                events.append(stellar_xdr.DiagnosticEvent.from_xdr(raw))
            body = self._meta_body(response)
            if body is not None:
                events.extend(getattr(body, "diagnostic_events", None) or [])
                soroban_meta = getattr(body, "soroban_meta", None)
                events.extend(getattr(soroban_meta, "diagnostic_events", None) or [])
        except (AttributeError, TypeError, ValueError) as exc:
            logger.warning("%s", ParseError(f"could not decode diagnostic events: {exc}"))
        for event in events:
            code = contract_error_from_event(event)
            if code is not None:
                return code
        return None

    def _reward(self, response: Any) -> int | None:
        """Decode the call's return value from transaction meta, if any."""
        try:
            from stellar_sdk import scval

            body = self._meta_body(response)
            if body is None or body.soroban_meta is None:
                return None
            return_value = body.soroban_meta.return_value
            if return_value is None:
                return None
            return decode_reward(scval.to_native(return_value))
        except (AttributeError, TypeError, ValueError) as exc:
            logger.warning("%s", ParseError(f"could not decode return value: {exc}"))
            return None
