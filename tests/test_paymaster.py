"""Tests for the paymaster coordinator."""

import pytest
from eth_account import Account
from eth_utils import to_bytes

from conftest import FIXED_NOW, ONE_VYR, TEST_ADDRESS
from vyra_sdk.errors import ContractRevert, ErrorCode, OperationCode
from vyra_sdk.messages import LocalSigner, encode_digest_message, session_operation_digest
from vyra_sdk.rpc import TransactionReceipt

USER = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
SESSION = "0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC"
TARGET = "0x9fE46736679d2D9a65F0992F2272dE9f3c7fa6e0"
SIGNATURE = "0x" + "11" * 65


class TestSessionKeys:
    """Tests for session key lifecycle."""

    @pytest.mark.asyncio
    async def test_create_session_key(self, paymaster, contracts, config):
        """Test a fresh key is registered with the default 24h expiry."""
        response = await paymaster.create_session_key()

        assert response.success, response.error
        grant = response.data
        assert grant.user == TEST_ADDRESS
        assert grant.session_key.expiry == FIXED_NOW + 86400
        assert grant.session_key.active is True
        assert grant.session_key.nonce == 0
        assert grant.confirmed is False
        assert grant.session_key.address == grant.signer.address

        sent = contracts.sent[0]
        assert sent.contract == config.paymaster_address
        assert sent.function == "createSessionKey"
        assert sent.args == [grant.signer.address, FIXED_NOW + 86400]
        assert "signer" not in grant.to_dict()

    @pytest.mark.asyncio
    async def test_past_expiry_is_refused(self, paymaster, contracts):
        """Test an expiry in the past is invalid input."""
        response = await paymaster.create_session_key(expiry=FIXED_NOW - 10)

        assert response.error.code == ErrorCode.INVALID_INPUT
        assert contracts.sent == []

    @pytest.mark.asyncio
    async def test_confirm_session_key(self, paymaster, provider):
        """Test confirmation marks the grant confirmed, and a failed receipt deactivates it."""
        grant = (await paymaster.create_session_key()).data

        confirmed = await paymaster.confirm_session_key(grant)
        assert confirmed.data.confirmed is True
        assert confirmed.data.session_key.active is True

        second = (await paymaster.create_session_key()).data
        provider.receipts[second.tx_hash] = TransactionReceipt(second.tx_hash, 1, False, 0)
        failed = await paymaster.confirm_session_key(second)
        assert failed.error.code == OperationCode.SESSION_KEY_CONFIRM_FAILED
        assert failed.tx_hash == second.tx_hash
        assert second.session_key.active is False

    @pytest.mark.asyncio
    async def test_revoke(self, paymaster, contracts):
        """Test revocation submits and carries the tx hash."""
        response = await paymaster.revoke_session_key()

        assert response.data is True
        assert response.tx_hash == contracts.sent[0].tx_hash
        assert contracts.sent[0].function == "revokeSessionKey"

    @pytest.mark.asyncio
    async def test_get_session_key(self, paymaster, contracts):
        """Test the on-chain session is returned checksummed, or NotFound."""
        contracts.set_view("sessionKeys", (SESSION.lower(), 3, FIXED_NOW + 100, True))

        session = (await paymaster.get_session_key(USER)).data
        assert session.address == SESSION
        assert session.nonce == 3

        contracts.set_view("sessionKeys", ("0x" + "00" * 20, 0, 0, False))
        missing = await paymaster.get_session_key(USER)
        assert missing.error.code == ErrorCode.NOT_FOUND


class TestValidateSessionKey:
    """Tests for session key validation."""

    @pytest.mark.asyncio
    async def test_current_nonce_defers_to_contract(self, paymaster, contracts):
        """Test that a matching session and nonce asks the contract."""
        contracts.set_view("sessionKeys", (SESSION.lower(), 3, FIXED_NOW + 100, True))
        contracts.set_view("validateSessionKey", (True,))

        response = await paymaster.validate_session_key(USER, SESSION, 3, SIGNATURE)

        assert response.data is True
        assert contracts.view_calls[-1][1] == "validateSessionKey"

    @pytest.mark.asyncio
    async def test_stale_nonce_is_rejected(self, paymaster, contracts):
        """Test that a nonce other than the current one is rejected locally."""
        contracts.set_view("sessionKeys", (SESSION.lower(), 3, FIXED_NOW + 100, True))
        contracts.set_view("validateSessionKey", (True,))

        for nonce in (2, 4):
            response = await paymaster.validate_session_key(USER, SESSION, nonce, SIGNATURE)
            assert response.success
            assert response.data is False

        assert all(call[1] != "validateSessionKey" for call in contracts.view_calls)

    @pytest.mark.asyncio
    async def test_inactive_or_foreign_key(self, paymaster, contracts):
        """Test inactive sessions and other keys are rejected."""
        contracts.set_view("validateSessionKey", (True,))

        contracts.set_view("sessionKeys", (SESSION.lower(), 0, FIXED_NOW + 100, False))
        assert (await paymaster.validate_session_key(USER, SESSION, 0, SIGNATURE)).data is False

        contracts.set_view("sessionKeys", (USER.lower(), 0, FIXED_NOW + 100, True))
        assert (await paymaster.validate_session_key(USER, SESSION, 0, SIGNATURE)).data is False

    @pytest.mark.asyncio
    async def test_bad_signature_hex(self, paymaster):
        """Test a non-hex signature is invalid input."""
        response = await paymaster.validate_session_key(USER, SESSION, 0, "zz")

        assert response.error.code == ErrorCode.INVALID_INPUT

    @pytest.mark.asyncio
    async def test_sign_session_operation(self, paymaster, config):
        """Test the session signature recovers to the session key for the paymaster."""
        session_signer = LocalSigner.create()

        response = await paymaster.sign_session_operation(
            session_signer, USER, TARGET, "0xa9059cbb", 0
        )

        digest = session_operation_digest(
            USER, session_signer.address, TARGET, to_bytes(hexstr="0xa9059cbb"), 0, 31337
        )
        recovered = Account.recover_message(
            encode_digest_message(digest, config.paymaster_address),
            signature=to_bytes(hexstr=response.data),
        )
        assert recovered == session_signer.address


class TestSponsorship:
    """Tests for sponsor balances and gas estimates."""

    @pytest.mark.asyncio
    async def test_add_sponsor_balance(self, paymaster, contracts):
        """Test funding submits user and amount."""
        response = await paymaster.add_sponsor_balance(USER, "25")

        assert response.success, response.error
        assert contracts.sent[0].args == [USER, 25 * ONE_VYR]

    @pytest.mark.asyncio
    async def test_add_sponsor_balance_insufficient(self, paymaster, contracts):
        """Test a low wallet balance fails before submission."""
        contracts.set_view("balanceOf", (ONE_VYR,))

        response = await paymaster.add_sponsor_balance(USER, "25")

        assert response.error.code == ErrorCode.INSUFFICIENT_BALANCE
        assert response.error.details["available"] == "1.0"
        assert contracts.sent == []

    @pytest.mark.asyncio
    async def test_has_sponsor_balance_accepts_string_gas(self, paymaster, contracts):
        """Test gas estimates may be given as integer strings."""
        contracts.set_view("hasSponsorBalance", (True,))

        response = await paymaster.has_sponsor_balance(USER, "21000")

        assert response.data is True
        assert contracts.view_calls[-1][2] == (USER, 21000)

    @pytest.mark.asyncio
    async def test_required_vyr_amount(self, paymaster):
        """Test conversion is rendered as a decimal string."""
        response = await paymaster.get_required_vyr_amount(100_000)

        assert response.data == "0.1"

    @pytest.mark.asyncio
    async def test_estimate_gas_for_sponsored_tx(self, paymaster, provider):
        """Test the estimate carries fee data and the VYR cost, fetched fresh each call."""
        response = await paymaster.estimate_gas_for_sponsored_tx(TARGET, "0xa9059cbb")

        estimate = response.data
        assert estimate.gas_limit == 50_000
        assert estimate.vyr_cost == "0.05"
        assert estimate.max_fee_per_gas == 5 * 10**9

        await paymaster.estimate_gas_for_sponsored_tx(TARGET, "0xa9059cbb")
        assert provider.calls["get_fee_data"] == 2

    @pytest.mark.asyncio
    async def test_estimate_gas_revert(self, paymaster, provider):
        """Test a reverting call is reported as GAS_ESTIMATE_FAILED."""
        provider.gas_estimate = ContractRevert("Execution reverted: nope", reason="nope")

        response = await paymaster.estimate_gas_for_sponsored_tx(TARGET, "0x")

        assert response.error.code == ErrorCode.GAS_ESTIMATE_FAILED
        assert response.error.details["revertReason"] == "nope"

    @pytest.mark.asyncio
    async def test_paymaster_stats(self, paymaster, contracts):
        """Test the three totals are combined."""
        contracts.set_view("totalSponsoredGas", (1_000_000,))
        contracts.set_view("totalVyrSpent", (3 * ONE_VYR,))
        contracts.set_view("totalSponsorships", (7,))

        response = await paymaster.get_paymaster_stats()

        assert response.data.to_dict() == {
            "totalSponsoredGas": "1000000",
            "totalVyrSpent": "3.0",
            "totalSponsorships": "7",
        }
