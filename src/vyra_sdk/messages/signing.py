"""Signing for Vyra payment authorizations.

Two structurally distinct EIP-191 encodings are used so that a payment digest
can never be presented to a user as a harmless text message:

- Digests are signed as version ``0x00`` ("intended validator") data bound to
  the verifying contract address.
- Human-readable text is signed as version ``0x45`` (``personal_sign``).
  Text that looks like a raw 32-byte digest is refused outright.

Works with any signer implementing ``MessageSigner``:
- ``LocalSigner`` (eth_account key held in process)
- remote or hardware signers exposing the same coroutine methods
"""

import asyncio
import logging
import re
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Protocol

from eth_account import Account
from eth_account.messages import SignableMessage, encode_defunct, encode_intended_validator
from eth_utils import to_bytes, to_checksum_address, to_hex

from ..errors import InvalidInput, NotConnected
from ..utils import normalize_address
from .hashing import to_bytes32

logger = logging.getLogger(__name__)

_DIGEST_LIKE_RE = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")


class MessageSigner(Protocol):
    """Protocol for a signing capability."""

    async def get_address(self) -> str:
        """Get the signer's address."""
        ...

    async def sign_message(self, message: SignableMessage) -> str:
        """Sign an EIP-191 message.

        Returns:
            Signature as 0x-prefixed hex string
        """
        ...

    async def sign_transaction(self, transaction: Dict[str, Any]) -> bytes:
        """Sign a transaction dict.

        Returns:
            Raw signed transaction bytes
        """
        ...


class LocalSigner:
    """``MessageSigner`` backed by an ``eth_account`` key held in memory."""

    def __init__(self, private_key: str):
        self._account = Account.from_key(private_key)

    @classmethod
    def create(cls) -> "LocalSigner":
        """Generate a signer with a fresh random key."""
        account = Account.create()
        return cls(to_hex(account.key))

    @property
    def address(self) -> str:
        return self._account.address

    @property
    def private_key(self) -> str:
        return to_hex(self._account.key)

    async def get_address(self) -> str:
        return self._account.address

    async def sign_message(self, message: SignableMessage) -> str:
        signed = self._account.sign_message(message)
        return to_hex(signed.signature)

    async def sign_transaction(self, transaction: Dict[str, Any]) -> bytes:
        signed = self._account.sign_transaction(transaction)
        return bytes(signed.raw_transaction)

    def __repr__(self) -> str:
        return f"LocalSigner(address={self._account.address})"


def encode_digest_message(digest: Any, verifying_contract: str) -> SignableMessage:
    """EIP-191 version 0x00 encoding of a 32-byte digest for ``verifying_contract``."""
    return encode_intended_validator(
        validator_address=normalize_address(verifying_contract, "verifying_contract"),
        primitive=to_bytes32(digest, "digest"),
    )


def encode_text_message(text: str) -> SignableMessage:
    """EIP-191 ``personal_sign`` encoding of human-readable text.

    Raises:
        InvalidInput: If the text is empty or looks like a raw digest
    """
    if not isinstance(text, str) or not text:
        raise InvalidInput("Message must be a non-empty string", field="message")
    if _DIGEST_LIKE_RE.match(text.strip()):
        raise InvalidInput(
            "Refusing to sign a raw 32-byte digest as text; use digest signing",
            field="message",
        )
    return encode_defunct(text=text)


def _signature_bytes(signature: str) -> bytes:
    try:
        return to_bytes(hexstr=signature)
    except (TypeError, ValueError) as exc:
        raise InvalidInput(f"Malformed signature: {exc}", field="signature") from exc


def recover_text_signer(text: str, signature: str) -> str:
    """Recover the address that signed ``text``."""
    return Account.recover_message(encode_defunct(text=text), signature=_signature_bytes(signature))


def recover_digest_signer(digest: Any, verifying_contract: str, signature: str) -> str:
    """Recover the address that signed ``digest`` for ``verifying_contract``."""
    return Account.recover_message(
        encode_digest_message(digest, verifying_contract),
        signature=_signature_bytes(signature),
    )


def verify_digest_signature(
    digest: Any,
    verifying_contract: str,
    signature: str,
    expected_signer: str,
) -> bool:
    """Verify a digest signature locally (for EOA signatures).

    Note: contract wallets must be verified on-chain via EIP-1271.

    Returns:
        True if signature is valid and from expected signer
    """
    try:
        recovered = recover_digest_signer(digest, verifying_contract, signature)
    except Exception:
        return False
    return recovered.lower() == expected_signer.lower()


class SignerHandle:
    """A connected signer held for the duration of one signed operation."""

    def __init__(self, signer: MessageSigner, address: str):
        self.signer = signer
        self.address = address

    async def sign_digest(self, digest: Any, verifying_contract: str) -> str:
        return await self.signer.sign_message(encode_digest_message(digest, verifying_contract))

    async def sign_text(self, text: str) -> str:
        return await self.signer.sign_message(encode_text_message(text))


class SigningAuthority:
    """Explicit signing context shared by coordinators.

    Connecting, disconnecting and every signed operation take the same lock,
    so a signer swap can never interleave with an in-flight signature or the
    submission that follows it.
    """

    def __init__(self, signer: Optional[MessageSigner] = None):
        self._signer = signer
        self._lock = asyncio.Lock()
        self._disconnect_listeners: List[Callable[[], None]] = []

    @property
    def is_connected(self) -> bool:
        return self._signer is not None

    async def connect(self, signer: MessageSigner) -> str:
        """Bind ``signer``; returns its checksummed address."""
        async with self._lock:
            address = to_checksum_address(await signer.get_address())
            self._signer = signer
        logger.info("Signer connected: %s", address)
        return address

    async def disconnect(self) -> None:
        async with self._lock:
            self._signer = None
            listeners = list(self._disconnect_listeners)
        logger.info("Signer disconnected")
        for listener in listeners:
            listener()

    def add_disconnect_listener(self, listener: Callable[[], None]) -> None:
        self._disconnect_listeners.append(listener)

    def remove_disconnect_listener(self, listener: Callable[[], None]) -> None:
        if listener in self._disconnect_listeners:
            self._disconnect_listeners.remove(listener)

    async def get_address(self) -> str:
        """Address of the bound signer, without waiting for an operation in flight.

        Raises:
            NotConnected: If no signer is bound
        """
        signer = self._signer
        if signer is None:
            raise NotConnected()
        return to_checksum_address(await signer.get_address())

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[SignerHandle]:
        """Acquire the signer for one operation; released on every exit path.

        Raises:
            NotConnected: If no signer is bound
        """
        async with self._lock:
            if self._signer is None:
                raise NotConnected()
            address = to_checksum_address(await self._signer.get_address())
            yield SignerHandle(self._signer, address)

    async def sign_digest(self, digest: Any, verifying_contract: str) -> str:
        async with self.hold() as handle:
            return await handle.sign_digest(digest, verifying_contract)

    async def sign_text(self, text: str) -> str:
        async with self.hold() as handle:
            return await handle.sign_text(text)
