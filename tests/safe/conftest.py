"""Safe deployment fixtures."""

import pytest
from web3 import Web3

from eth_safe_deployer.abi import ContractArtifact
from eth_safe_deployer.safe.masters import ContractKind, MasterSet, fetch_master_contracts
from eth_safe_deployer.safe.testing import make_stub_master_artifacts

#: Master copy addresses for call data tests, no contracts behind them
MASTER_ADDRESSES = {
    ContractKind.wallet_logic: "0x" + "11" * 20,
    ContractKind.proxy_factory: "0x" + "22" * 20,
    ContractKind.recovery_module: "0x" + "33" * 20,
    ContractKind.module_installer: "0x" + "44" * 20,
}


@pytest.fixture()
def masters(web3: Web3) -> MasterSet:
    """Master copies bound at fixed addresses with the bundled ABIs."""
    return fetch_master_contracts(web3, MASTER_ADDRESSES)


@pytest.fixture()
def stub_artifacts() -> dict[ContractKind, ContractArtifact]:
    return make_stub_master_artifacts()
