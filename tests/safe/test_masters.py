"""Master copy deployment on a local chain."""

import dataclasses
import json

import pytest
from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3

from eth_safe_deployer.abi import ContractArtifact
from eth_safe_deployer.deploy import MissingSigner
from eth_safe_deployer.safe.masters import (
    ContractKind,
    DeploymentFailed,
    MasterSet,
    deploy_master_contracts,
    fetch_master_contracts,
    load_master_artifacts,
)
from eth_safe_deployer.safe.testing import REVERT_RUNTIME, make_init_code


@pytest.fixture()
def hot_wallet(web3: Web3, deployer: str) -> LocalAccount:
    """Local account with some ETH for gas."""
    account = Account.create()
    tx_hash = web3.eth.send_transaction({"from": deployer, "to": account.address, "value": 10 * 10**18})
    web3.eth.wait_for_transaction_receipt(tx_hash)
    return account


@pytest.mark.parametrize("parallel", [True, False])
def test_deploy_master_contracts(web3: Web3, deployer: str, stub_artifacts, parallel: bool):
    """Four master copies with distinct addresses."""
    masters = deploy_master_contracts(web3, deployer, stub_artifacts, parallel=parallel)

    assert masters.is_complete()
    addresses = masters.get_addresses()
    assert len(addresses) == 4
    assert all(a is not None for a in addresses.values())
    assert len(set(addresses.values())) == 4

    for address in addresses.values():
        assert web3.eth.get_code(address) == b"\x00"


def test_deploy_master_contracts_local_account(web3: Web3, hot_wallet: LocalAccount, stub_artifacts):
    """Locally signed deployments broadcast with consecutive nonces."""
    masters = deploy_master_contracts(web3, hot_wallet, stub_artifacts, parallel=True)
    assert len(set(masters.get_addresses().values())) == 4
    assert web3.eth.get_transaction_count(hot_wallet.address) == 4


def test_redeploy_gives_fresh_set(web3: Web3, deployer: str, stub_artifacts):
    first = deploy_master_contracts(web3, deployer, stub_artifacts)
    second = deploy_master_contracts(web3, deployer, stub_artifacts)
    assert set(first.get_addresses().values()).isdisjoint(set(second.get_addresses().values()))


def test_deploy_without_signer(web3: Web3, stub_artifacts):
    """No transaction goes out without a signer."""
    block_number = web3.eth.block_number
    with pytest.raises(MissingSigner):
        deploy_master_contracts(web3, None, stub_artifacts)
    assert web3.eth.block_number == block_number


def test_deploy_reverting_master(web3: Web3, deployer: str, stub_artifacts):
    """Failure names the master copy that could not be deployed, here caught by the gas estimation."""
    artifacts = dict(stub_artifacts)
    artifacts[ContractKind.recovery_module] = dataclasses.replace(
        stub_artifacts[ContractKind.recovery_module],
        bytecode=Web3.to_hex(REVERT_RUNTIME),
    )

    with pytest.raises(DeploymentFailed) as exc_info:
        deploy_master_contracts(web3, deployer, artifacts, parallel=False)

    assert exc_info.value.which == ContractKind.recovery_module
    assert "recovery_module" in str(exc_info.value)


@pytest.mark.parametrize("parallel", [True, False])
def test_deploy_reverting_master_mined(web3: Web3, deployer: str, stub_artifacts, parallel: bool):
    """Explicit gas skips the estimation, the revert lands on chain with status 0."""
    artifacts = dict(stub_artifacts)
    artifacts[ContractKind.recovery_module] = dataclasses.replace(
        stub_artifacts[ContractKind.recovery_module],
        bytecode=Web3.to_hex(REVERT_RUNTIME),
    )

    with pytest.raises(DeploymentFailed) as exc_info:
        deploy_master_contracts(web3, deployer, artifacts, parallel=parallel, gas=500_000)

    assert exc_info.value.which == ContractKind.recovery_module
    assert "revert reason" in str(exc_info.value)


def test_deploy_abi_only_artifact(web3: Web3, deployer: str, stub_artifacts):
    artifacts = dict(stub_artifacts)
    artifacts[ContractKind.module_installer] = dataclasses.replace(stub_artifacts[ContractKind.module_installer], bytecode=None)

    with pytest.raises(DeploymentFailed) as exc_info:
        deploy_master_contracts(web3, deployer, artifacts)

    assert exc_info.value.which == ContractKind.module_installer


def test_deploy_missing_artifact(web3: Web3, deployer: str, stub_artifacts):
    artifacts = dict(stub_artifacts)
    del artifacts[ContractKind.wallet_logic]

    with pytest.raises(DeploymentFailed) as exc_info:
        deploy_master_contracts(web3, deployer, artifacts)

    assert exc_info.value.which == ContractKind.wallet_logic


def test_fetch_master_contracts(web3: Web3, deployer: str, stub_artifacts):
    """Rebind an earlier deployment by addresses."""
    masters = deploy_master_contracts(web3, deployer, stub_artifacts)
    addresses = {kind.value: address for kind, address in masters.get_addresses().items()}

    fetched = fetch_master_contracts(web3, addresses)
    assert isinstance(fetched, MasterSet)
    assert fetched.get_addresses() == masters.get_addresses()
    assert fetched.wallet_logic.functions.setup is not None


def test_load_master_artifacts(tmp_path, stub_artifacts):
    """Read Truffle style build directory."""

    for kind, artifact in stub_artifacts.items():
        data = {"contractName": artifact.name, "abi": list(artifact.abi), "bytecode": artifact.bytecode[2:]}
        (tmp_path / kind.get_artifact_filename()).write_text(json.dumps(data))

    artifacts = load_master_artifacts(tmp_path)
    assert set(artifacts.keys()) == set(ContractKind)
    for kind, artifact in artifacts.items():
        assert isinstance(artifact, ContractArtifact)
        assert artifact.bytecode == stub_artifacts[kind].bytecode
        assert artifact.has_bytecode()

    assert artifacts[ContractKind.wallet_logic].name == "GnosisSafe"
    assert make_init_code(b"\x00") == stub_artifacts[ContractKind.wallet_logic].bytecode
