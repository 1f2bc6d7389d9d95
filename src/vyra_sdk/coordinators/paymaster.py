"""Gas sponsorship and session keys.

Sponsored transactions are paid for in VYR: the paymaster contract converts
a gas estimate into a VYR amount and debits the user's sponsor balance.
Session keys are delegated, time-boxed signers that authorize sponsored
calls on a user's behalf.

Eligibility and conversion results are always read fresh from the
contract; nothing here caches them.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from eth_utils import is_hex, to_bytes, to_checksum_address

from ..config import SESSION_KEY_EXPIRY
from ..errors import ContractRevert, GasEstimateFailed, InvalidInput, NotFound, OperationCode, RpcError
from ..messages.hashing import session_operation_digest
from ..messages.signing import LocalSigner, MessageSigner, encode_digest_message
from ..messages.types import GasEstimate, SessionKey
from ..response import VyraResponse, enveloped
from ..utils import ZERO_ADDRESS, normalize_address, parse_payment_amount, to_decimal_string, to_minor_units
from .base import Coordinator, parse_gas

logger = logging.getLogger(__name__)

CREATE_SESSION_KEY = "createSessionKey(address,uint256)"
REVOKE_SESSION_KEY = "revokeSessionKey()"
SESSION_KEYS = "sessionKeys(address) returns (address,uint256,uint256,bool)"
VALIDATE_SESSION_KEY = "validateSessionKey(address,address,uint256,bytes) returns (bool)"
ADD_SPONSOR_BALANCE = "addSponsorBalance(address,uint256)"
HAS_SPONSOR_BALANCE = "hasSponsorBalance(address,uint256) returns (bool)"
TOTAL_SPONSORED_GAS = "totalSponsoredGas() returns (uint256)"
TOTAL_VYR_SPENT = "totalVyrSpent() returns (uint256)"
TOTAL_SPONSORSHIPS = "totalSponsorships() returns (uint256)"


def _call_data_bytes(data: Union[str, bytes], field: str = "data") -> bytes:
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    if isinstance(data, str) and data.startswith("0x") and is_hex(data) and len(data) % 2 == 0:
        return to_bytes(hexstr=data)
    raise InvalidInput(f"Invalid {field}: expected 0x-prefixed hex calldata", field=field)


@dataclass
class SessionKeyGrant:
    """A session key as created by this SDK.

    ``signer`` holds the session private key and is never serialized. The
    grant is provisional until ``confirm_session_key`` observes the receipt.
    """

    user: str
    session_key: SessionKey
    signer: LocalSigner
    tx_hash: str
    confirmed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user": self.user,
            "sessionKey": self.session_key.to_dict(),
            "txHash": self.tx_hash,
            "confirmed": self.confirmed,
        }


@dataclass
class PaymasterStats:
    total_sponsored_gas: int
    total_vyr_spent: int
    total_sponsorships: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalSponsoredGas": str(self.total_sponsored_gas),
            "totalVyrSpent": to_decimal_string(self.total_vyr_spent),
            "totalSponsorships": str(self.total_sponsorships),
        }


class PaymasterCoordinator(Coordinator):
    """Session keys and sponsor balances on the paymaster contract."""

    @enveloped(OperationCode.SESSION_KEY_CREATE_FAILED)
    async def create_session_key(self, expiry: Optional[int] = None) -> VyraResponse[SessionKeyGrant]:
        """Generate a fresh session key and register it for the connected user.

        Args:
            expiry: Unix timestamp in seconds. Default: 24 hours from now

        Returns:
            ``SessionKeyGrant`` whose key reads ``active`` with nonce 0. The
            grant stays unconfirmed until ``confirm_session_key`` sees the
            receipt.
        """
        now = self._now()
        if expiry is None:
            expiry = now + SESSION_KEY_EXPIRY
        if isinstance(expiry, bool) or not isinstance(expiry, int):
            raise InvalidInput(f"Invalid expiry: {expiry!r}", field="expiry")
        if expiry <= now:
            raise InvalidInput("Session key expiry is in the past", field="expiry")

        self._require_connected()
        await self._chain_id()

        session_signer = LocalSigner.create()
        async with self._authority.hold() as handle:
            tx = await self._submit(
                handle,
                self.config.paymaster_address,
                CREATE_SESSION_KEY,
                [session_signer.address, expiry],
            )

        grant = SessionKeyGrant(
            user=handle.address,
            session_key=SessionKey(address=session_signer.address, nonce=0, expiry=expiry, active=True),
            signer=session_signer,
            tx_hash=tx.hash,
        )
        logger.info("Session key %s requested for %s: %s", session_signer.address, handle.address, tx.hash)
        return VyraResponse.ok(grant, tx_hash=tx.hash)

    @enveloped(OperationCode.SESSION_KEY_CONFIRM_FAILED)
    async def confirm_session_key(self, grant: SessionKeyGrant) -> VyraResponse[SessionKeyGrant]:
        """Mark a grant confirmed once its registration transaction is mined.

        A reverted registration deactivates the grant's session key.
        """
        try:
            await self._confirm(grant.tx_hash)
        except ContractRevert:
            grant.session_key.active = False
            raise
        grant.confirmed = True
        return VyraResponse.ok(grant, tx_hash=grant.tx_hash)

    @enveloped(OperationCode.SESSION_KEY_REVOKE_FAILED)
    async def revoke_session_key(self) -> VyraResponse[bool]:
        self._require_connected()
        await self._chain_id()
        async with self._authority.hold() as handle:
            tx = await self._submit(handle, self.config.paymaster_address, REVOKE_SESSION_KEY, [])
        logger.info("Session key revoked for %s: %s", handle.address, tx.hash)
        return VyraResponse.ok(True, tx_hash=tx.hash)

    async def _fetch_session(self, user: str) -> Optional[SessionKey]:
        key, nonce, expiry, active = await self._call(
            self.config.paymaster_address, SESSION_KEYS, [user]
        )
        if int(key, 16) == int(ZERO_ADDRESS, 16):
            return None
        return SessionKey(address=to_checksum_address(key), nonce=nonce, expiry=expiry, active=active)

    @enveloped(OperationCode.SESSION_KEY_FETCH_FAILED)
    async def get_session_key(self, user: str) -> SessionKey:
        """Authoritative on-chain session for ``user``.

        Raises:
            NotFound: If the user has never registered a session key
        """
        user = normalize_address(user, "user")
        session = await self._fetch_session(user)
        if session is None:
            raise NotFound("SessionKey", user)
        return session

    @enveloped(OperationCode.SPONSOR_BALANCE_ADD_FAILED)
    async def add_sponsor_balance(self, user: str, amount: str) -> VyraResponse[str]:
        """Fund ``user``'s sponsor balance from the connected wallet.

        Raises:
            InsufficientBalance: If the wallet holds less than ``amount`` VYR
        """
        user = normalize_address(user, "user")
        value = parse_payment_amount(amount)

        self._require_connected()
        await self._chain_id()

        async with self._authority.hold() as handle:
            await self._require_balance(handle.address, value)
            tx = await self._submit(
                handle, self.config.paymaster_address, ADD_SPONSOR_BALANCE, [user, value]
            )
        logger.info("Sponsor balance +%s VYR for %s: %s", to_decimal_string(value), user, tx.hash)
        return VyraResponse.ok(tx.hash, tx_hash=tx.hash)

    @enveloped(OperationCode.SPONSOR_BALANCE_CHECK_FAILED)
    async def has_sponsor_balance(self, user: str, gas_estimate: Union[int, str]) -> bool:
        user = normalize_address(user, "user")
        (has_balance,) = await self._call(
            self.config.paymaster_address, HAS_SPONSOR_BALANCE, [user, parse_gas(gas_estimate)]
        )
        return has_balance

    @enveloped(OperationCode.VYR_AMOUNT_CALCULATE_FAILED)
    async def get_required_vyr_amount(self, gas_estimate: Union[int, str]) -> str:
        """VYR needed to sponsor ``gas_estimate`` gas, as a decimal string."""
        return to_decimal_string(await self._required_vyr_amount(parse_gas(gas_estimate)))

    @enveloped(OperationCode.GAS_ESTIMATE_FAILED)
    async def estimate_gas_for_sponsored_tx(
        self, to: str, data: Union[str, bytes], value: str = "0"
    ) -> GasEstimate:
        """Estimate gas and its VYR cost for a sponsored call.

        Fee data is fetched on every call.

        Raises:
            GasEstimateFailed: If the call would revert
        """
        to = normalize_address(to, "to")
        call_data = _call_data_bytes(data)
        wei_value = to_minor_units(value)

        try:
            gas_limit = await self._read(
                lambda: self._provider.estimate_gas({"to": to, "data": call_data, "value": wei_value})
            )
        except (ContractRevert, RpcError) as exc:
            raise GasEstimateFailed(
                f"Gas estimation failed: {exc.message}", details=dict(exc.details)
            ) from exc

        fee_data = await self._read(self._provider.get_fee_data)
        vyr_cost = await self._required_vyr_amount(gas_limit)
        return GasEstimate(
            gas_limit=gas_limit,
            gas_price=fee_data.gas_price or 0,
            vyr_cost=to_decimal_string(vyr_cost),
            max_fee_per_gas=fee_data.max_fee_per_gas,
            max_priority_fee_per_gas=fee_data.max_priority_fee_per_gas,
        )

    @enveloped(OperationCode.SESSION_KEY_VALIDATE_FAILED)
    async def validate_session_key(
        self, user: str, session_key: str, nonce: int, signature: str
    ) -> bool:
        """Check a session-key authorization without submitting anything.

        Returns False when the session is inactive, belongs to another key, or
        ``nonce`` is not exactly the current session nonce. Otherwise the
        contract's ``validateSessionKey`` view decides.
        """
        user = normalize_address(user, "user")
        session_key = normalize_address(session_key, "session_key")
        if isinstance(nonce, bool) or not isinstance(nonce, int) or nonce < 0:
            raise InvalidInput(f"Invalid nonce: {nonce!r}", field="nonce")
        signature_bytes = _call_data_bytes(signature, "signature")

        session = await self._fetch_session(user)
        if session is None or not session.active:
            return False
        if session.address != session_key:
            return False
        if nonce != session.nonce:
            logger.info("Stale session nonce for %s: got %d, expected %d", user, nonce, session.nonce)
            return False

        (valid,) = await self._call(
            self.config.paymaster_address,
            VALIDATE_SESSION_KEY,
            [user, session_key, nonce, signature_bytes],
        )
        return valid

    @enveloped(OperationCode.SESSION_OPERATION_SIGN_FAILED)
    async def sign_session_operation(
        self,
        session_signer: MessageSigner,
        user: str,
        target: str,
        call_data: Union[str, bytes],
        nonce: int,
    ) -> str:
        """Sign one sponsored call with a session key.

        The digest binds user, session key, target, calldata, nonce and chain
        id, and is signed for the paymaster as verifying contract.
        """
        user = normalize_address(user, "user")
        target = normalize_address(target, "target")
        payload = _call_data_bytes(call_data, "call_data")
        if isinstance(nonce, bool) or not isinstance(nonce, int) or nonce < 0:
            raise InvalidInput(f"Invalid nonce: {nonce!r}", field="nonce")

        chain_id = await self._chain_id()
        session_address = to_checksum_address(await session_signer.get_address())
        digest = session_operation_digest(user, session_address, target, payload, nonce, chain_id)
        return await session_signer.sign_message(
            encode_digest_message(digest, self.config.paymaster_address)
        )

    @enveloped(OperationCode.PAYMASTER_STATS_FETCH_FAILED)
    async def get_paymaster_stats(self) -> PaymasterStats:
        paymaster = self.config.paymaster_address
        (gas,), (spent,), (count,) = await asyncio.gather(
            self._call(paymaster, TOTAL_SPONSORED_GAS),
            self._call(paymaster, TOTAL_VYR_SPENT),
            self._call(paymaster, TOTAL_SPONSORSHIPS),
        )
        return PaymasterStats(total_sponsored_gas=gas, total_vyr_spent=spent, total_sponsorships=count)
