import json
from pathlib import Path
from typing import Any

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.middleware import SignAndSendRawMiddlewareBuilder

ABI_DIR = Path(__file__).parent.parent / "abi"


class ContractUtility:
    """
    Utility for Web3 connection setup and ABI loading.

    Can be used in two modes:
    1. Signing mode: Initialize with RPC URL and secret to send transactions
    2. Read-only mode: Initialize with RPC URL only for view calls
    """

    def __init__(self, rpc_url: str, secret: str = "", request_timeout: int = 30) -> None:
        """
        Initialize the ContractUtility.

        Args:
            rpc_url: RPC URL for the network (required)
            secret: Private key for signing transactions (optional - read-only mode without it)
            request_timeout: HTTP request timeout in seconds
        """
        if not rpc_url:
            raise ValueError("RPC URL is required")

        self.rpc_url = rpc_url
        self.account: LocalAccount | None = None

        self.w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={'timeout': request_timeout}))

        if secret:
            self._add_signing_middleware(secret)

    def _add_signing_middleware(self, secret: str) -> None:
        """
        Add signing middleware to the existing Web3 instance.

        Args:
            secret: Private key for signing transactions
        """
        if not secret:
            raise ValueError("Private key is required for signing transactions")

        account: LocalAccount = Account.from_key(secret)
        self.w3.middleware_onion.add(SignAndSendRawMiddlewareBuilder.build(account))
        self.w3.eth.default_account = account.address
        self.account = account

    def get_contract(self, contract_name: str, address: str) -> Any:
        """Create a contract instance bound to this connection."""
        return self.w3.eth.contract(
            address=Web3.to_checksum_address(address),
            abi=self.get_contract_abi(contract_name),
        )

    @staticmethod
    def get_contract_abi(contract_name: str) -> list[dict[str, Any]]:
        """Fetches ABI of the given contract from the bundled abi folder.

        Args:
            contract_name: Name of the contract (without .json extension)

        Returns:
            List of ABI dictionaries for the contract

        Raises:
            FileNotFoundError: If the contract file doesn't exist
            json.JSONDecodeError: If the contract file is invalid JSON
        """
        contract_path: Path = (ABI_DIR / f"{contract_name}.json").resolve()

        with contract_path.open() as file:
            contract_data: dict[str, Any] = json.load(file)

        return contract_data["abi"]
