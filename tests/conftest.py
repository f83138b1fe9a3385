"""Shared fixtures for a local Ethereum Tester chain."""

import pytest
from eth_typing import HexAddress
from web3 import EthereumTesterProvider, Web3


@pytest.fixture
def tester_provider():
    # https://web3py.readthedocs.io/en/stable/examples.html#contract-unit-tests-in-python
    return EthereumTesterProvider()


@pytest.fixture
def web3(tester_provider):
    """Set up a local unit testing blockchain."""
    # https://web3py.readthedocs.io/en/stable/examples.html#contract-unit-tests-in-python
    return Web3(tester_provider)


@pytest.fixture()
def deployer(web3) -> str:
    """Deploy account.

    Do some account allocation for tests.
    """
    return web3.eth.accounts[0]


@pytest.fixture()
def accounts(web3) -> list[HexAddress]:
    """Owner, first guardian, second guardian."""
    return web3.eth.accounts[0:3]
