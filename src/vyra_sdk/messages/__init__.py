"""Vyra payment messages.

This module provides the authorization layer shared by every coordinator.

Key components:
- Request and message types (invoices, split payments, session keys)
- Canonical digests (deterministic, replay-resistant)
- Tag-separated signing and verification (EIP-191)

Example usage:
    ```python
    from vyra_sdk.messages import (
        LocalSigner,
        SigningAuthority,
        invoice_digest,
        verify_digest_signature,
    )

    authority = SigningAuthority(LocalSigner("0x..."))

    digest = invoice_digest(
        merchant="0x...",
        amount=10 * 10**18,  # 10 VYR
        description="Coffee beans",
        expiry=1700003600,
        nonce=0,
        chain_id=31337,
    )

    signature = await authority.sign_digest(digest, verifying_contract=pos_address)
    ```
"""

from .types import (
    GasEstimate,
    InvoiceRequest,
    Metadata,
    PaymentMessage,
    PaymentRequest,
    SessionKey,
    SplitPaymentRequest,
)
from .hashing import (
    description_digest,
    encode_field,
    generate_invoice_id,
    generate_payment_id,
    generate_withdrawal_id,
    hash_fields,
    invoice_digest,
    payment_digest,
    payment_message_digest,
    session_operation_digest,
    split_payment_digest,
    to_bytes32,
    verify_invoice_id,
)
from .signing import (
    LocalSigner,
    MessageSigner,
    SignerHandle,
    SigningAuthority,
    encode_digest_message,
    encode_text_message,
    recover_digest_signer,
    recover_text_signer,
    verify_digest_signature,
)

__all__ = [
    # Types
    "GasEstimate",
    "InvoiceRequest",
    "Metadata",
    "PaymentMessage",
    "PaymentRequest",
    "SessionKey",
    "SplitPaymentRequest",
    # Hashing
    "description_digest",
    "encode_field",
    "generate_invoice_id",
    "generate_payment_id",
    "generate_withdrawal_id",
    "hash_fields",
    "invoice_digest",
    "payment_digest",
    "payment_message_digest",
    "session_operation_digest",
    "split_payment_digest",
    "to_bytes32",
    "verify_invoice_id",
    # Signing
    "LocalSigner",
    "MessageSigner",
    "SignerHandle",
    "SigningAuthority",
    "encode_digest_message",
    "encode_text_message",
    "recover_digest_signer",
    "recover_text_signer",
    "verify_digest_signature",
]
