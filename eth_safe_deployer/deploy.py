"""Deploy compiled contracts.

- Bind a compiled artifact to a signer, see :py:func:`create_contract_factory`

- Deploy with node-side signing or a local private key, see :py:func:`deploy_contract`
"""

import logging
from typing import Type

from eth_account.signers.local import LocalAccount
from hexbytes import HexBytes
from web3 import Web3
from web3.contract import Contract

from eth_safe_deployer.abi import ContractArtifact, get_contract
from eth_safe_deployer.tx import get_sender_address, send_bound_call

logger = logging.getLogger(__name__)


class MissingSigner(Exception):
    """We do not have a connected signer to create transactions with."""


class MissingBytecode(Exception):
    """The artifact has only ABI and cannot be deployed."""


class ContractDeploymentFailed(Exception):
    """Did not get successful tx receipt from a deployment."""

    def __init__(self, tx_hash, msg):
        super().__init__(msg)
        self.tx_hash = tx_hash


def check_signer(web3: Web3, deployer: str | LocalAccount | None):
    """Check we have a signer and a live connection before creating any transactions.

    :raise MissingSigner:
        If the signer is not set or the node is not reachable.
    """
    if deployer is None:
        raise MissingSigner("No deployer account given. Account discovery must complete before deployments.")

    if not web3.is_connected():
        raise MissingSigner(f"Web3 provider {web3.provider} is not connected, cannot sign as {get_sender_address(deployer)}")


def create_contract_factory(
    web3: Web3,
    artifact: ContractArtifact,
    deployer: str | LocalAccount | None,
) -> Type[Contract]:
    """Bind an artifact to a signer and produce a deployable contract class.

    Nothing is sent to the chain here.

    Example:

    .. code-block:: python

        artifact = load_artifact(Path("build/contracts/GnosisSafe.json"))
        Contract = create_contract_factory(web3, artifact, deployer)
        instance = deploy_contract(web3, Contract, deployer)

    :param artifact:
        Compiled contract with bytecode

    :param deployer:
        Deployer account, see :py:func:`deploy_contract`

    :raise MissingSigner:
        If no deployer is connected yet.

    :raise MissingBytecode:
        If the artifact has only ABI.

    :return:
        Contract class with ABI and bytecode
    """
    check_signer(web3, deployer)

    if not artifact.has_bytecode():
        raise MissingBytecode(f"Artifact {artifact.name} does not carry bytecode, supply a compiled artifact")

    return get_contract(web3, artifact)


def deploy_contract(
    web3: Web3,
    contract: Type[Contract],
    deployer: str | LocalAccount,
    *constructor_args,
    gas: int = None,
    nonce: int = None,
    confirm=True,
) -> Contract | HexBytes:
    """Deploys a new contract.

    A generic helper function to deploy any contract.

    Example:

    .. code-block:: python

        Contract = create_contract_factory(web3, artifact, deployer)
        proxy_factory = deploy_contract(web3, Contract, deployer)
        print(f"Deployed proxy factory at {proxy_factory.address}")

    :param web3:
        Web3 instance

    :param contract:
        Contract class from :py:func:`create_contract_factory`

    :param deployer:
        Deployer account.

        Either address (node signs, like Anvil and Ethereum Tester) or LocalAccount.

    :param constructor_args:
        Other arguments to pass to the contract's constructor

    :param gas:
        Gas limit.

        If not set tries to estimate and probably may hit reverts when doing so.

    :param nonce:
        Explicit nonce for a local account.

    :param confirm:
        Wait for the deployment receipt.

    :raise ContractDeploymentFailed:
        In the case we could not deploy the contract.

    :return:
        Contract proxy instance or tx_hash if confirm=false.
    """

    tx_hash = send_bound_call(
        web3,
        contract.constructor(*constructor_args),
        deployer,
        gas=gas,
        nonce=nonce,
    )

    if not confirm:
        return tx_hash

    tx_receipt = web3.eth.wait_for_transaction_receipt(tx_hash)
    return get_deployed_instance(contract, tx_hash, tx_receipt)


def get_deployed_instance(
    contract: Type[Contract],
    tx_hash: HexBytes,
    tx_receipt: dict,
) -> Contract:
    """Bind the contract class to the address from the deployment receipt.

    :raise ContractDeploymentFailed:
        The deployment reverted.
    """
    if tx_receipt["status"] != 1:
        raise ContractDeploymentFailed(tx_hash, f"Contract deployment failed, tx hash is {Web3.to_hex(tx_hash)}")

    contract_address = tx_receipt["contractAddress"]
    if not contract_address:
        raise ContractDeploymentFailed(tx_hash, f"Deployment receipt has no contract address, tx hash is {Web3.to_hex(tx_hash)}")

    return contract(address=contract_address)
