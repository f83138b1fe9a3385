"""Contract factory and deployment."""

import pytest
from web3 import Web3

from eth_safe_deployer.abi import ContractArtifact, load_artifact
from eth_safe_deployer.deploy import (
    ContractDeploymentFailed,
    MissingBytecode,
    MissingSigner,
    create_contract_factory,
    deploy_contract,
    get_deployed_instance,
)
from eth_safe_deployer.safe.testing import STUB_RUNTIME, make_init_code


@pytest.fixture()
def stub_artifact() -> ContractArtifact:
    return ContractArtifact(name="Stub", abi=(), bytecode=make_init_code(STUB_RUNTIME))


def test_deploy_contract(web3: Web3, deployer: str, stub_artifact):
    Contract = create_contract_factory(web3, stub_artifact, deployer)
    instance = deploy_contract(web3, Contract, deployer)
    assert web3.eth.get_code(instance.address) == STUB_RUNTIME


def test_deploy_contract_no_confirm(web3: Web3, deployer: str, stub_artifact):
    Contract = create_contract_factory(web3, stub_artifact, deployer)
    tx_hash = deploy_contract(web3, Contract, deployer, confirm=False)
    receipt = web3.eth.wait_for_transaction_receipt(tx_hash)
    instance = get_deployed_instance(Contract, tx_hash, receipt)
    assert instance.address == receipt["contractAddress"]


def test_factory_without_signer(web3: Web3, stub_artifact):
    with pytest.raises(MissingSigner):
        create_contract_factory(web3, stub_artifact, None)


def test_factory_without_bytecode(web3: Web3, deployer: str):
    with pytest.raises(MissingBytecode):
        create_contract_factory(web3, load_artifact("GnosisSafe.json"), deployer)


def test_failed_receipt(web3: Web3, stub_artifact, deployer: str):
    Contract = create_contract_factory(web3, stub_artifact, deployer)
    tx_hash = b"\x01" * 32
    with pytest.raises(ContractDeploymentFailed) as exc_info:
        get_deployed_instance(Contract, tx_hash, {"status": 0, "contractAddress": None})
    assert exc_info.value.tx_hash == tx_hash


def test_setup_console_logging(monkeypatch):
    from eth_safe_deployer.utils import setup_console_logging

    monkeypatch.setenv("LOG_LEVEL", "info")
    root = setup_console_logging()
    assert root.name == "root"
