"""Ledger gateway over the ticketing contracts deployed on an EVM chain."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Sequence, TypeVar

import aiohttp
from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import AsyncWeb3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception
from web3.logs import DISCARD

from intervia.core.config import Settings
from intervia.core.tasks import gather_or_cancel
from intervia.tickets.errors import GatewayUnavailable, LedgerWriteFailed, LedgerWriteRejected
from intervia.tickets.models import LedgerTicketState
from intervia.tickets.state import TicketState

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x" + "0" * 40

# raised by AsyncHTTPProvider outside the web3 exception hierarchy
TRANSPORT_ERRORS = (asyncio.TimeoutError, OSError, aiohttp.ClientError)

T = TypeVar("T")


def load_abi(path: Path) -> list[dict[str, Any]]:
    """Read an ABI from a bare ABI list or a compiler artifact with an ``abi`` key."""

    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("abi")
    if not isinstance(data, list):
        raise ValueError(f"No ABI found in {path}")
    return data


@dataclass(frozen=True, slots=True)
class ContractAbis:
    registry: Sequence[dict[str, Any]]
    network: Sequence[dict[str, Any]]
    ticket: Sequence[dict[str, Any]]
    service: Sequence[dict[str, Any]]

    @classmethod
    def from_directory(cls, directory: str | Path) -> "ContractAbis":
        base = Path(directory)
        return cls(
            registry=load_abi(base / "STUB.json"),
            network=load_abi(base / "TransportNetworkOntology.json"),
            ticket=load_abi(base / "Ticket.json"),
            service=load_abi(base / "Service.json"),
        )


def ticket_id_to_bytes(ticket_id: str) -> bytes | None:
    raw = ticket_id[2:] if ticket_id.lower().startswith("0x") else ticket_id
    try:
        value = bytes.fromhex(raw)
    except ValueError:
        return None
    return value if len(value) == 32 else None


def _is_zero_address(address: str | None) -> bool:
    return not address or int(address, 16) == 0


class Web3LedgerGateway:
    """Ledger gateway backed by the registry, network and ticket contracts.

    Reads go through ``eth_call``; writes are signed locally (issuer account
    for issuance, validator account for activation and expiry) and awaited
    until the receipt is available. Every network round-trip is bounded by
    ``call_timeout``.
    """

    def __init__(
        self,
        w3: AsyncWeb3,
        *,
        registry_address: str,
        network_address: str,
        abis: ContractAbis,
        issuer: LocalAccount | None = None,
        validator: LocalAccount | None = None,
        call_timeout: float = 10.0,
        receipt_timeout: float = 120.0,
    ) -> None:
        self._w3 = w3
        self._abis = abis
        self._registry = w3.eth.contract(address=AsyncWeb3.to_checksum_address(registry_address), abi=abis.registry)
        self._network = w3.eth.contract(address=AsyncWeb3.to_checksum_address(network_address), abi=abis.network)
        self._issuer = issuer
        self._validator = validator
        self._call_timeout = call_timeout
        self._receipt_timeout = receipt_timeout
        # one in-flight nonce allocation per signing account
        self._signing_locks: dict[str, asyncio.Lock] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "Web3LedgerGateway":
        if not settings.stub_address or not settings.tonne_address:
            raise ValueError("Ledger contract addresses are not configured")
        w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(settings.ledger_rpc_url))
        return cls(
            w3,
            registry_address=settings.stub_address,
            network_address=settings.tonne_address,
            abis=ContractAbis.from_directory(settings.contract_artifacts_dir),
            issuer=Account.from_key(settings.issuer_private_key) if settings.issuer_private_key else None,
            validator=Account.from_key(settings.validator_private_key) if settings.validator_private_key else None,
            call_timeout=settings.gateway_timeout_seconds,
            receipt_timeout=settings.ledger_receipt_timeout_seconds,
        )

    async def close(self) -> None:
        await self._w3.provider.disconnect()

    async def _bounded(self, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._call_timeout)
        except ContractLogicError:
            raise
        except (*TRANSPORT_ERRORS, Web3Exception) as exc:
            logger.error("Ledger call failed: %s", exc)
            raise GatewayUnavailable("Unable to reach the ledger", gateway="ledger") from exc

    def _ticket_contract(self, ticket_ref: str) -> Any:
        return self._w3.eth.contract(address=AsyncWeb3.to_checksum_address(ticket_ref), abi=self._abis.ticket)

    async def read_ticket_registry_entry(self, ticket_id: str) -> str | None:
        ticket_bytes = ticket_id_to_bytes(ticket_id)
        if ticket_bytes is None:
            return None
        try:
            details = await self._bounded(self._registry.functions.getTicketDetails(ticket_bytes).call())
        except ContractLogicError:
            return None
        # the registry returns a struct whose first member is the ticket contract address
        address = details[0] if isinstance(details, (list, tuple)) else details
        if _is_zero_address(address):
            return None
        return str(address)

    async def read_ticket_state(self, ticket_ref: str) -> LedgerTicketState:
        functions = self._ticket_contract(ticket_ref).functions
        owner, service_id, ticket_type, state_code, activated_at = await gather_or_cancel(
            self._bounded(functions.customerAddress().call()),
            self._bounded(functions.serviceId().call()),
            self._bounded(functions.ticketType().call()),
            self._bounded(functions.currentState().call()),
            self._bounded(functions.activationTimestamp().call()),
        )
        return LedgerTicketState(
            ticket_ref=ticket_ref,
            owner=str(owner),
            service_id=str(service_id),
            ticket_type=str(ticket_type),
            state=TicketState.from_ledger(state_code),
            activation_timestamp=int(activated_at) or None,
        )

    async def _transact(self, account: LocalAccount | None, call: Any, *, action: str) -> Any:
        if account is None:
            raise LedgerWriteFailed(f"No signing account configured for {action}", action=action)

        lock = self._signing_locks.setdefault(account.address, asyncio.Lock())
        try:
            async with lock:
                nonce = await self._bounded(self._w3.eth.get_transaction_count(account.address, "pending"))
                transaction = await self._bounded(call.build_transaction({"from": account.address, "nonce": nonce}))
                signed = account.sign_transaction(transaction)
                tx_hash = await self._bounded(self._w3.eth.send_raw_transaction(signed.raw_transaction))
            receipt = await self._w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self._receipt_timeout)
        except ContractLogicError as exc:
            raise LedgerWriteRejected(f"Ledger rejected {action}: {exc}", action=action) from exc
        except TimeExhausted as exc:
            raise GatewayUnavailable(f"Ledger did not confirm {action} in time", gateway="ledger", action=action) from exc
        except Web3Exception as exc:
            raise GatewayUnavailable(f"Unable to submit {action} to the ledger", gateway="ledger", action=action) from exc
        except TRANSPORT_ERRORS as exc:
            logger.error("Ledger connection lost during %s: %s", action, exc)
            raise GatewayUnavailable(f"Unable to reach the ledger during {action}", gateway="ledger", action=action) from exc

        if receipt["status"] != 1:
            raise LedgerWriteRejected(f"Ledger reverted {action}", action=action, tx_hash=tx_hash.hex())
        logger.info("Ledger %s committed in tx %s", action, tx_hash.hex())
        return receipt

    async def write_issue_ticket(
        self,
        customer: str,
        service_id: str,
        origin_stop_id: str,
        destination_stop_id: str,
        ticket_type: str,
    ) -> str:
        try:
            customer_address = AsyncWeb3.to_checksum_address(customer)
        except ValueError as exc:
            raise LedgerWriteRejected(f"Invalid customer address {customer!r}", action="issue") from exc

        call = self._registry.functions.issueTicket(
            customer_address, service_id, origin_stop_id, destination_stop_id, ticket_type
        )
        receipt = await self._transact(self._issuer, call, action="issue")

        events = self._registry.events.TicketIssued().process_receipt(receipt, errors=DISCARD)
        for event in events:
            if event["address"].lower() != self._registry.address.lower():
                continue
            ticket_id = event["args"]["ticketId"]
            return "0x" + bytes(ticket_id).hex()
        raise LedgerWriteFailed("TicketIssued event not found", action="issue", service_id=service_id)

    async def write_activate(self, ticket_ref: str, station_id: str) -> None:
        call = self._ticket_contract(ticket_ref).functions.activate(station_id)
        await self._transact(self._validator, call, action="activate")

    async def write_force_expire(self, ticket_ref: str) -> None:
        call = self._ticket_contract(ticket_ref).functions.forceExpire()
        await self._transact(self._validator, call, action="force_expire")

    async def read_service_digest(self, service_id: str) -> bytes | None:
        service_address = await self._bounded(self._network.functions.services(service_id).call())
        if _is_zero_address(service_address):
            return None
        service = self._w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(service_address), abi=self._abis.service
        )
        digest = await self._bounded(service.functions.getHashDigest().call())
        return bytes(digest)

    async def test_connection(self) -> bool:
        return bool(await self._bounded(self._w3.is_connected()))
