"""Vyra SDK facade.

Bundles the coordinators for one network behind a single object:

Example:
    ```python
    from vyra_sdk import InvoiceRequest, LocalSigner, VyraSDK

    async with VyraSDK.for_local(signer=LocalSigner("0x...")) as sdk:
        info = await sdk.wallet.get_wallet_info()
        invoice = await sdk.merchant.create_invoice(
            InvoiceRequest(amount="10", description="Order #42")
        )
    ```
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .config import (
    DEFAULT_LOCAL_RPC_URL,
    LOCAL_CHAIN_ID,
    MAINNET_CHAIN_ID,
    NETWORKS,
    SEPOLIA_CHAIN_ID,
    NetworkInfo,
    ResolvedOptions,
    VyraConfig,
    VyraOptions,
    get_network,
    load_config,
)
from .coordinators.base import with_timeout
from .coordinators.bridge import BridgeCoordinator
from .coordinators.invoice import InvoiceCoordinator
from .coordinators.paymaster import PaymasterCoordinator
from .coordinators.wallet import WalletCoordinator
from .errors import InvalidInput, OperationCode, VyraError
from .messages.signing import MessageSigner, SigningAuthority
from .nonces import InMemoryNonceSource, NonceSource
from .response import VyraResponse, enveloped
from .retry import RetryPolicy
from .rpc import ContractCaller, ContractClient, JsonRpcProvider, Provider, TransactionReceipt

logger = logging.getLogger(__name__)

SDK_VERSION = "0.1.0"

ProviderFactory = Callable[[VyraConfig, ResolvedOptions], Provider]
ContractsFactory = Callable[[Provider, VyraConfig], ContractCaller]


def _default_provider(config: VyraConfig, options: ResolvedOptions) -> Provider:
    return JsonRpcProvider(config.rpc_url, timeout_seconds=options.call_timeout)


def _default_contracts(provider: Provider, config: VyraConfig) -> ContractCaller:
    if not isinstance(provider, JsonRpcProvider):
        raise TypeError("ContractClient requires a JsonRpcProvider; pass contracts_factory")
    return ContractClient(provider, config.chain_id)


@dataclass
class _Modules:
    """Everything bound to one network, swapped as a unit."""

    config: VyraConfig
    provider: Provider
    contracts: ContractCaller
    wallet: WalletCoordinator
    merchant: InvoiceCoordinator
    paymaster: PaymasterCoordinator
    bridge: BridgeCoordinator


async def _close_provider(provider: Provider) -> None:
    close = getattr(provider, "close", None)
    if close is not None:
        await close()


class VyraSDK:
    """Entry point bundling wallet, merchant, paymaster and bridge coordinators.

    All coordinators share one ``SigningAuthority`` and one ``NonceSource``.
    """

    def __init__(
        self,
        config: VyraConfig,
        *,
        signer: Optional[MessageSigner] = None,
        authority: Optional[SigningAuthority] = None,
        nonce_source: Optional[NonceSource] = None,
        options: Optional[VyraOptions] = None,
        provider_factory: Optional[ProviderFactory] = None,
        contracts_factory: Optional[ContractsFactory] = None,
    ):
        """Initialize the SDK.

        Args:
            config: Network configuration
            signer: Signer to connect immediately
            authority: Existing signing authority to share (exclusive with ``signer``)
            nonce_source: Message nonce source. Default: ``InMemoryNonceSource``
            options: Timeouts, retries, confirmations and fee rates
            provider_factory: Builds the node provider for a config
            contracts_factory: Builds the contract caller for a provider

        Raises:
            ValueError: If both ``signer`` and ``authority`` are given
            InvalidInput: If the configuration is invalid
        """
        if signer is not None and authority is not None:
            raise ValueError("Pass either signer or authority, not both")
        config.validate()

        self._options = ResolvedOptions.resolve(options)
        self._authority = authority or SigningAuthority(signer)
        self._nonce_source = nonce_source or InMemoryNonceSource()
        self._provider_factory = provider_factory or _default_provider
        self._contracts_factory = contracts_factory or _default_contracts
        self._switch_lock = asyncio.Lock()
        self._modules = self._build(config)

    def _build(self, config: VyraConfig) -> _Modules:
        provider = self._provider_factory(config, self._options)
        contracts = self._contracts_factory(provider, config)
        shared = dict(nonce_source=self._nonce_source, options=self._options)
        return _Modules(
            config=config,
            provider=provider,
            contracts=contracts,
            wallet=WalletCoordinator(config, provider, contracts, self._authority, **shared),
            merchant=InvoiceCoordinator(config, provider, contracts, self._authority, **shared),
            paymaster=PaymasterCoordinator(config, provider, contracts, self._authority, **shared),
            bridge=BridgeCoordinator(config, provider, contracts, self._authority, **shared),
        )

    @property
    def config(self) -> VyraConfig:
        return self._modules.config

    @property
    def authority(self) -> SigningAuthority:
        return self._authority

    @property
    def provider(self) -> Provider:
        return self._modules.provider

    @property
    def wallet(self) -> WalletCoordinator:
        return self._modules.wallet

    @property
    def merchant(self) -> InvoiceCoordinator:
        return self._modules.merchant

    @property
    def paymaster(self) -> PaymasterCoordinator:
        return self._modules.paymaster

    @property
    def bridge(self) -> BridgeCoordinator:
        return self._modules.bridge

    async def connect(self, signer: MessageSigner) -> str:
        """Connect a signer for every coordinator; returns its address."""
        return await self._authority.connect(signer)

    async def disconnect(self) -> None:
        """Disconnect the signer; balance watchers stop."""
        await self._authority.disconnect()

    def get_network(self) -> NetworkInfo:
        network = NETWORKS.get(self.config.chain_id)
        if network is not None and network.config == self.config:
            return network
        return NetworkInfo(
            name=network.name if network is not None else "Unknown",
            config=self.config,
            block_explorer=network.block_explorer if network is not None else "",
        )

    @enveloped(OperationCode.NETWORK_SWITCH_FAILED)
    async def switch_network(self, chain_id: int, rpc_url: Optional[str] = None) -> NetworkInfo:
        """Rebuild every coordinator for another known network.

        The new bundle is fully built before it replaces the old one; the old
        provider is closed afterwards.
        """
        try:
            network = get_network(chain_id)
        except InvalidInput as exc:
            raise VyraError(
                exc.message,
                code=OperationCode.NETWORK_SWITCH_FAILED,
                details={"chainId": chain_id},
            ) from exc

        config = VyraConfig.for_network(chain_id, rpc_url)
        modules = self._build(config)
        async with self._switch_lock:
            previous, self._modules = self._modules, modules
        previous.wallet.close()
        await _close_provider(previous.provider)
        logger.info("Switched to %s (chain %d)", network.name, chain_id)
        return self.get_network()

    def _retry(self) -> RetryPolicy:
        return RetryPolicy(self._options.max_retries, self._options.retry_base_delay)

    @enveloped(OperationCode.GAS_PRICE_FETCH_FAILED)
    async def get_gas_price(self) -> str:
        """Current gas price in wei, as a string."""
        provider = self.provider
        fee_data = await self._retry().run(
            lambda: with_timeout(provider.get_fee_data(), self._options.call_timeout)
        )
        return str(fee_data.gas_price or 0)

    @enveloped(OperationCode.BLOCK_NUMBER_FETCH_FAILED)
    async def get_block_number(self) -> int:
        provider = self.provider
        return await self._retry().run(
            lambda: with_timeout(provider.get_block_number(), self._options.call_timeout)
        )

    @enveloped(OperationCode.TRANSACTION_WAIT_FAILED)
    async def wait_for_transaction(
        self, tx_hash: str, confirmations: int = 1
    ) -> VyraResponse[TransactionReceipt]:
        receipt = await with_timeout(
            self.provider.wait_for_transaction(
                tx_hash, confirmations, self._options.confirmation_timeout
            ),
            self._options.confirmation_timeout + self._options.call_timeout,
        )
        return VyraResponse.ok(receipt, tx_hash=tx_hash)

    async def is_initialized(self) -> bool:
        """True if the node answers with the configured chain id."""
        try:
            chain_id = await with_timeout(self.provider.get_chain_id(), self._options.call_timeout)
        except VyraError as exc:
            logger.warning("Node check failed: %s", exc)
            return False
        return chain_id == self.config.chain_id

    def get_version(self) -> str:
        return SDK_VERSION

    async def close(self) -> None:
        self._modules.wallet.close()
        await _close_provider(self._modules.provider)

    async def __aenter__(self) -> "VyraSDK":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @classmethod
    def for_mainnet(cls, rpc_url: Optional[str] = None, **kwargs: Any) -> "VyraSDK":
        return cls(VyraConfig.for_network(MAINNET_CHAIN_ID, rpc_url), **kwargs)

    @classmethod
    def for_testnet(cls, rpc_url: Optional[str] = None, **kwargs: Any) -> "VyraSDK":
        """SDK for Sepolia."""
        return cls(VyraConfig.for_network(SEPOLIA_CHAIN_ID, rpc_url), **kwargs)

    @classmethod
    def for_local(cls, rpc_url: str = DEFAULT_LOCAL_RPC_URL, **kwargs: Any) -> "VyraSDK":
        """SDK for a local Hardhat node with the default deployment addresses."""
        return cls(VyraConfig.for_network(LOCAL_CHAIN_ID, rpc_url), **kwargs)

    @classmethod
    def from_env(cls, env_file: Optional[str] = None, **kwargs: Any) -> "VyraSDK":
        """SDK configured from ``VYRA_*`` environment variables (see ``load_config``)."""
        return cls(load_config(env_file), **kwargs)
