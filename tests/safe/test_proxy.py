"""Safe wallet proxy deployment with stand-in factory and proxy contracts."""

import dataclasses
import logging

import pytest
from eth_typing import HexAddress
from web3 import Web3

from eth_safe_deployer.deploy import MissingSigner
from eth_safe_deployer.event import EventNotFound
from eth_safe_deployer.safe.calldata import CompositionStep, EncodingFailed, MissingMasterSet
from eth_safe_deployer.safe.masters import ContractKind, MasterSet, deploy_master_contracts
from eth_safe_deployer.safe.proxy import ProxyCreationFailed, deploy_wallet_proxy
from eth_safe_deployer.safe.testing import (
    REVERT_RUNTIME,
    STUB_RUNTIME,
    deploy_stand_in,
    make_address_list_runtime,
    make_proxy_creation_runtime,
)


@pytest.fixture()
def deployed_masters(web3: Web3, deployer: str, stub_artifacts) -> MasterSet:
    return deploy_master_contracts(web3, deployer, stub_artifacts)


@pytest.fixture()
def wallet_proxy(web3: Web3, deployer: str, deployed_masters: MasterSet):
    """Stand-in Safe proxy reporting the recovery module as its only module."""
    runtime = make_address_list_runtime(deployed_masters.recovery_module.address)
    return deploy_stand_in(web3, deployer, ContractKind.wallet_logic, runtime)


@pytest.fixture()
def emitting_masters(web3: Web3, deployer: str, deployed_masters: MasterSet, wallet_proxy) -> MasterSet:
    """Master set where the proxy factory announces our stand-in proxy."""
    factory = deploy_stand_in(web3, deployer, ContractKind.proxy_factory, make_proxy_creation_runtime(wallet_proxy.address))
    return dataclasses.replace(deployed_masters, proxy_factory=factory)


def test_deploy_wallet_proxy(web3: Web3, deployer: str, emitting_masters: MasterSet, wallet_proxy, accounts: list[HexAddress]):
    """Proxy address comes from the event and modules are read back from the new wallet.

    The stand-in proxy answers getModules() with the recovery module master address
    it was deployed with, so this shows the read back, not the module installation.
    """
    wallet = deploy_wallet_proxy(web3, deployer, emitting_masters, accounts)

    assert wallet.address == wallet_proxy.address
    assert wallet.contract.address == wallet_proxy.address
    assert wallet.receipt["status"] == 1
    assert wallet.modules == [emitting_masters.recovery_module.address]
    assert wallet.is_module_count_ok()

    # The sent transaction carries the composed call data
    tx = web3.eth.get_transaction(wallet.tx_hash)
    assert tx["to"] == emitting_masters.proxy_factory.address
    func, args = emitting_masters.proxy_factory.decode_function_input(tx["input"])
    assert func.fn_name == "createProxy"
    assert args["masterCopy"] == emitting_masters.wallet_logic.address
    assert args["data"] == wallet.call_data.wallet_setup


def test_module_count_mismatch_is_warning(web3: Web3, deployer: str, emitting_masters: MasterSet, accounts: list[HexAddress], caplog):
    """Unexpected module count is reported, not raised."""
    with caplog.at_level(logging.WARNING):
        wallet = deploy_wallet_proxy(web3, deployer, emitting_masters, accounts, expected_module_count=2)

    assert not wallet.is_module_count_ok()
    assert len(wallet.modules) == 1
    assert "expected 2" in caplog.text


def test_no_proxy_creation_event(web3: Web3, deployer: str, deployed_masters: MasterSet, accounts: list[HexAddress]):
    """Factory that emits nothing is an integrity error."""
    silent_factory = deploy_stand_in(web3, deployer, ContractKind.proxy_factory, STUB_RUNTIME)
    masters = dataclasses.replace(deployed_masters, proxy_factory=silent_factory)

    with pytest.raises(EventNotFound) as exc_info:
        deploy_wallet_proxy(web3, deployer, masters, accounts)

    assert exc_info.value.event_name == "ProxyCreation"
    assert exc_info.value.field_name == "proxy"


def test_proxy_creation_reverts(web3: Web3, deployer: str, deployed_masters: MasterSet, accounts: list[HexAddress]):
    reverting_factory = deploy_stand_in(web3, deployer, ContractKind.proxy_factory, REVERT_RUNTIME)
    masters = dataclasses.replace(deployed_masters, proxy_factory=reverting_factory)

    with pytest.raises(ProxyCreationFailed):
        deploy_wallet_proxy(web3, deployer, masters, accounts)


def test_proxy_creation_reverts_mined(web3: Web3, deployer: str, deployed_masters: MasterSet, accounts: list[HexAddress]):
    """With explicit gas the failed createProxy() is mined and reported with its tx hash."""
    reverting_factory = deploy_stand_in(web3, deployer, ContractKind.proxy_factory, REVERT_RUNTIME)
    masters = dataclasses.replace(deployed_masters, proxy_factory=reverting_factory)

    with pytest.raises(ProxyCreationFailed) as exc_info:
        deploy_wallet_proxy(web3, deployer, masters, accounts, gas=500_000)

    tx_hash = exc_info.value.tx_hash
    assert tx_hash is not None
    assert web3.eth.get_transaction_receipt(tx_hash)["status"] == 0
    assert f"createProxy() tx {Web3.to_hex(tx_hash)} reverted" in str(exc_info.value)


def test_no_masters(web3: Web3, deployer: str, accounts: list[HexAddress]):
    with pytest.raises(MissingMasterSet):
        deploy_wallet_proxy(web3, deployer, None, accounts)


def test_no_signer(web3: Web3, deployed_masters: MasterSet, accounts: list[HexAddress]):
    with pytest.raises(MissingSigner):
        deploy_wallet_proxy(web3, None, deployed_masters, accounts)


def test_composition_fails_before_sending(web3: Web3, deployer: str, emitting_masters: MasterSet, accounts: list[HexAddress]):
    """Unreachable guardian threshold is refused locally, nothing is broadcast."""
    block_number = web3.eth.block_number

    with pytest.raises(EncodingFailed) as exc_info:
        deploy_wallet_proxy(web3, deployer, emitting_masters, accounts, guardian_threshold=3)

    assert exc_info.value.step == CompositionStep.recovery_setup
    assert web3.eth.block_number == block_number
