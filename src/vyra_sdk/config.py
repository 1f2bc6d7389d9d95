"""Network configuration and SDK options."""

import os
from dataclasses import dataclass, field, replace
from typing import Dict, Optional, TypedDict

from dotenv import load_dotenv

from .errors import InvalidInput
from .fees import FeeStructure
from .utils import ZERO_ADDRESS, is_valid_address

ENTRY_POINT_V06 = "0x5FF137D4b0FDCD49DcA30c7CF57E578a026d2789"

MAINNET_CHAIN_ID = 1
SEPOLIA_CHAIN_ID = 11155111
LOCAL_CHAIN_ID = 31337

DEFAULT_LOCAL_RPC_URL = "http://localhost:8545"

SESSION_KEY_EXPIRY = 24 * 60 * 60  # 24 hours
INVOICE_EXPIRY = 60 * 60  # 1 hour


@dataclass(frozen=True)
class VyraConfig:
    """Addresses and endpoint for one deployment."""

    rpc_url: str
    chain_id: int
    token_address: str
    paymaster_address: str
    pos_address: str
    bridge_address: str
    entry_point_address: str

    def validate(self) -> None:
        """Raise ``InvalidInput`` if the configuration is unusable."""
        if not self.rpc_url:
            raise InvalidInput("rpc_url is required", field="rpc_url")
        if isinstance(self.chain_id, bool) or not isinstance(self.chain_id, int) or self.chain_id <= 0:
            raise InvalidInput(f"Invalid chain_id: {self.chain_id!r}", field="chain_id")
        for name in (
            "token_address",
            "paymaster_address",
            "pos_address",
            "bridge_address",
            "entry_point_address",
        ):
            if not is_valid_address(getattr(self, name)):
                raise InvalidInput(f"Invalid {name}: {getattr(self, name)!r}", field=name)

    @classmethod
    def for_network(cls, chain_id: int, rpc_url: Optional[str] = None) -> "VyraConfig":
        """Build a config from the ``NETWORKS`` registry.

        Raises:
            InvalidInput: If the chain is not a known network
        """
        network = get_network(chain_id)
        return replace(network.config, rpc_url=rpc_url or network.config.rpc_url)


@dataclass(frozen=True)
class NetworkInfo:
    """A known deployment."""

    name: str
    config: VyraConfig
    block_explorer: str = ""

    @property
    def chain_id(self) -> int:
        return self.config.chain_id

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "chainId": self.config.chain_id,
            "rpcUrl": self.config.rpc_url,
            "blockExplorer": self.block_explorer,
            "vyraTokenAddress": self.config.token_address,
            "paymasterAddress": self.config.paymaster_address,
            "posAddress": self.config.pos_address,
            "bridgeAddress": self.config.bridge_address,
            "entryPointAddress": self.config.entry_point_address,
        }


# Mainnet and Sepolia contracts are not deployed yet and point at the zero
# address; only the local Hardhat deployment is usable end to end.
NETWORKS: Dict[int, NetworkInfo] = {
    MAINNET_CHAIN_ID: NetworkInfo(
        name="Ethereum Mainnet",
        block_explorer="https://etherscan.io",
        config=VyraConfig(
            rpc_url="https://eth.llamarpc.com",
            chain_id=MAINNET_CHAIN_ID,
            token_address=ZERO_ADDRESS,
            paymaster_address=ZERO_ADDRESS,
            pos_address=ZERO_ADDRESS,
            bridge_address=ZERO_ADDRESS,
            entry_point_address=ENTRY_POINT_V06,
        ),
    ),
    SEPOLIA_CHAIN_ID: NetworkInfo(
        name="Sepolia Testnet",
        block_explorer="https://sepolia.etherscan.io",
        config=VyraConfig(
            rpc_url="https://rpc.sepolia.org",
            chain_id=SEPOLIA_CHAIN_ID,
            token_address=ZERO_ADDRESS,
            paymaster_address=ZERO_ADDRESS,
            pos_address=ZERO_ADDRESS,
            bridge_address=ZERO_ADDRESS,
            entry_point_address=ENTRY_POINT_V06,
        ),
    ),
    LOCAL_CHAIN_ID: NetworkInfo(
        name="Local Development",
        config=VyraConfig(
            rpc_url=DEFAULT_LOCAL_RPC_URL,
            chain_id=LOCAL_CHAIN_ID,
            token_address="0x5FbDB2315678afecb367f032d93F642f64180aa3",
            paymaster_address="0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512",
            pos_address="0x9fE46736679d2D9a65F0992F2272dE9f3c7fa6e0",
            bridge_address="0xCf7Ed3AccA5a467e9e704C703E8D87F634fB0Fc9",
            entry_point_address="0x0165878A594ca255338adfa4d48449f69242Eb8F",
        ),
    ),
}


def get_network(chain_id: int) -> NetworkInfo:
    network = NETWORKS.get(chain_id)
    if network is None:
        raise InvalidInput(f"Unsupported network: {chain_id}", field="chain_id")
    return network


def load_config(env_file: Optional[str] = None) -> VyraConfig:
    """Load configuration from the environment (and an optional ``.env`` file).

    ``VYRA_CHAIN_ID`` selects the base network (default: local). Any of
    ``VYRA_RPC_URL``, ``VYRA_TOKEN_ADDRESS``, ``VYRA_PAYMASTER_ADDRESS``,
    ``VYRA_POS_ADDRESS``, ``VYRA_BRIDGE_ADDRESS`` and
    ``VYRA_ENTRY_POINT_ADDRESS`` override the registry values.
    """
    load_dotenv(env_file)

    chain_id_text = os.getenv("VYRA_CHAIN_ID", str(LOCAL_CHAIN_ID))
    try:
        chain_id = int(chain_id_text)
    except ValueError:
        raise InvalidInput(
            f"VYRA_CHAIN_ID must be an integer, got {chain_id_text!r}", field="chain_id"
        ) from None

    base = get_network(chain_id).config
    config = VyraConfig(
        rpc_url=os.getenv("VYRA_RPC_URL") or base.rpc_url,
        chain_id=chain_id,
        token_address=os.getenv("VYRA_TOKEN_ADDRESS") or base.token_address,
        paymaster_address=os.getenv("VYRA_PAYMASTER_ADDRESS") or base.paymaster_address,
        pos_address=os.getenv("VYRA_POS_ADDRESS") or base.pos_address,
        bridge_address=os.getenv("VYRA_BRIDGE_ADDRESS") or base.bridge_address,
        entry_point_address=os.getenv("VYRA_ENTRY_POINT_ADDRESS") or base.entry_point_address,
    )
    config.validate()
    return config


class VyraOptions(TypedDict, total=False):
    """Tunable SDK behaviour."""

    call_timeout: float
    """Seconds allowed for each network call. Default: 30"""

    max_retries: int
    """Attempts for idempotent reads. Default: 3"""

    retry_base_delay: float
    """First backoff delay in seconds, doubled per attempt. Default: 1.0"""

    confirmations: int
    """Blocks to wait for when confirming submissions. Default: 1"""

    confirmation_timeout: float
    """Seconds to wait for a receipt. Default: 120"""

    balance_poll_interval: float
    """Seconds between balance polls. Default: 30"""

    fees: FeeStructure
    """Fee rates in basis points. Default: ``FeeStructure()``"""


@dataclass
class ResolvedOptions:
    """Resolved options with all defaults applied."""

    call_timeout: float = 30.0
    max_retries: int = 3
    retry_base_delay: float = 1.0
    confirmations: int = 1
    confirmation_timeout: float = 120.0
    balance_poll_interval: float = 30.0
    fees: FeeStructure = field(default_factory=FeeStructure)

    @classmethod
    def resolve(cls, options: Optional[VyraOptions] = None) -> "ResolvedOptions":
        options = options or {}
        defaults = cls()
        return cls(
            call_timeout=options.get("call_timeout", defaults.call_timeout),
            max_retries=options.get("max_retries", defaults.max_retries),
            retry_base_delay=options.get("retry_base_delay", defaults.retry_base_delay),
            confirmations=options.get("confirmations", defaults.confirmations),
            confirmation_timeout=options.get("confirmation_timeout", defaults.confirmation_timeout),
            balance_poll_interval=options.get("balance_poll_interval", defaults.balance_poll_interval),
            fees=options.get("fees", defaults.fees),
        )
