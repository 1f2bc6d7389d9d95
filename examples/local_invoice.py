"""Local Invoice and Payment Example.

This example walks a merchant through the point-of-sale flow against a
local Hardhat deployment:
- Create and sign an invoice, then wait for its receipt
- Render a signed QR payload and verify it as a scanner would
- Preview fees and send a direct VYR payment

Prerequisites:
1. pip install vyra-sdk
2. Run a Hardhat node with the Vyra contracts deployed
3. Set VYRA_PRIVATE_KEY (and optionally the VYRA_* overrides, see load_config)

Usage:
    python local_invoice.py
"""

import asyncio
import os
from dotenv import load_dotenv

load_dotenv()


async def main():
    # Import here to show what's needed
    from vyra_sdk import (
        InvoiceRequest,
        LocalSigner,
        PaymentRequest,
        VyraSDK,
        configure_logging,
        parse_qr_data,
    )

    configure_logging()

    # Validate required env vars
    required = ["VYRA_PRIVATE_KEY"]
    missing = [var for var in required if not os.environ.get(var)]
    if missing:
        print(f"Missing required environment variables: {', '.join(missing)}")
        return

    print("=" * 60)
    print("  VYRA LOCAL INVOICE FLOW")
    print("=" * 60)

    signer = LocalSigner(os.environ["VYRA_PRIVATE_KEY"])

    async with VyraSDK.from_env(signer=signer) as sdk:
        network = sdk.get_network()
        print(f"\nNetwork: {network.name} (chain {network.chain_id})")
        if not await sdk.is_initialized():
            print("Node is unreachable or on another chain.")
            return

        print("\n[1] Wallet info...")
        info = await sdk.wallet.get_wallet_info()
        if not info.success:
            print(f"    Failed: {info.error.code} {info.error.message}")
            return
        print(f"    Address: {info.data.address}")
        print(f"    VYR:     {info.data.to_dict()['vyraBalance']}")

        print("\n[2] Creating invoice...")
        created = await sdk.merchant.create_invoice(
            InvoiceRequest(amount="12.5", description="Coffee beans")
        )
        if not created.success:
            print(f"    Failed: {created.error.code} {created.error.message}")
            return
        invoice = created.data
        print(f"    Invoice: {invoice.invoice_id}")
        print(f"    Tx:      {created.tx_hash}")
        print(f"    Fees:    {invoice.fees.to_dict()}")

        print("\n[3] Waiting for confirmation...")
        confirmed = await sdk.merchant.confirm_invoice(invoice)
        if confirmed.success:
            print(f"    State: {confirmed.data.state.value} (block {confirmed.data.block_number})")
        else:
            print(f"    Failed: {confirmed.error.code}")

        print("\n[4] Signed QR payload...")
        qr = await sdk.merchant.generate_qr_code_data(invoice.invoice_id, "12.5", "Coffee beans")
        if qr.success:
            payload = qr.data.encode()
            print(f"    {payload[:72]}...")
            print(f"    Scanner sees signer: {parse_qr_data(payload).signer}")

        print("\n[5] Sending a direct payment...")
        recipient = os.environ.get("VYRA_RECIPIENT", "0x70997970C51812dc3A010C7d01b50e0d17dc79C8")
        request = PaymentRequest(to=recipient, amount="1.5", description="Tip")
        estimate = await sdk.wallet.estimate_gas_for_payment(request)
        if estimate.success:
            print(f"    Gas: {estimate.data.gas_limit} (~{estimate.data.vyr_cost} VYR sponsored)")
        sent = await sdk.wallet.send_payment(request)
        if sent.success:
            print(f"    Sent {sent.data.to_dict()['netAmount']} VYR net: {sent.tx_hash}")
        else:
            print(f"    Failed: {sent.error.code} {sent.error.message}")

    print("\n" + "=" * 60)
    print("  DONE")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
