import json
from pathlib import Path
from typing import Any

from web3 import AsyncWeb3
from web3.contract import AsyncContract


class ContractUtility:
    """
    Utility for read-only contract access and ABI loading.

    Wraps an AsyncWeb3 HTTP connection to one chain. The validator never
    signs or sends transactions, so no account middleware is installed.
    """

    CONTRACTS_DIR: Path = Path(__file__).parent.parent / "contracts"

    def __init__(self, rpc_url: str, request_timeout: int = 30) -> None:
        """
        Initialize the ContractUtility.

        Args:
            rpc_url: RPC URL for the network (required)
            request_timeout: HTTP request timeout in seconds
        """
        if not rpc_url:
            raise ValueError("RPC URL is required")

        self.rpc_url = rpc_url
        self.w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(
            self.rpc_url,
            request_kwargs={'timeout': request_timeout}
        ))

    @classmethod
    def get_contract_abi(cls, contract_name: str) -> list[dict[str, Any]]:
        """Fetches ABI of the given contract from the contracts folder.

        Args:
            contract_name: Name of the contract (without .json extension)

        Returns:
            List of ABI dictionaries for the contract

        Raises:
            FileNotFoundError: If the contract file doesn't exist
            json.JSONDecodeError: If the contract file is invalid JSON
        """
        contract_path: Path = (cls.CONTRACTS_DIR / f"{contract_name}.json").resolve()

        with contract_path.open() as file:
            contract_data: dict[str, Any] = json.load(file)

        return contract_data["abi"]

    def get_contract(self, address: str, contract_name: str) -> AsyncContract:
        """Create a contract instance bound to this utility's connection.

        Args:
            address: Contract address (any case)
            contract_name: Name of the ABI file to use

        Returns:
            AsyncContract instance
        """
        return self.w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(address),
            abi=self.get_contract_abi(contract_name)
        )
