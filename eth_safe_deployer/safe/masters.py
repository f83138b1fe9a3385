"""Deploy Safe master copies.

A Safe wallet with a social recovery module needs four master copies on the chain:

- ``GnosisSafe`` - the wallet logic every wallet proxy delegates to

- ``GnosisSafeProxyFactory`` - creates proxies and emits ``ProxyCreation``

- ``SocialRecoveryModule`` - the recovery module logic, used through its own proxy

- ``CreateAndAddModules`` - delegate called during the Safe setup to create and enable modules

The master copies do not depend on each other, so their deployment transactions
can be broadcast together and confirmed afterwards.
"""

import datetime
import enum
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from eth_account.signers.local import LocalAccount
from eth_typing import HexAddress
from hexbytes import HexBytes
from web3 import Web3
from web3.contract.contract import Contract

from eth_safe_deployer.abi import ContractArtifact, get_deployed_contract, load_artifact
from eth_safe_deployer.confirmation import ConfirmationTimedOut, wait_transactions_to_complete
from eth_safe_deployer.deploy import (
    ContractDeploymentFailed,
    MissingBytecode,
    check_signer,
    create_contract_factory,
    deploy_contract,
    get_deployed_instance,
)
from eth_safe_deployer.revert_reason import fetch_transaction_revert_reason

logger = logging.getLogger(__name__)


class ContractKind(enum.Enum):
    """Master copy kinds we deploy."""

    wallet_logic = "wallet_logic"
    proxy_factory = "proxy_factory"
    recovery_module = "recovery_module"
    module_installer = "module_installer"

    def get_artifact_filename(self) -> str:
        """Compiler output filename for this contract kind."""
        return ARTIFACT_FILENAMES[self]


#: Compiler output filenames, also used for the bundled ABI files
ARTIFACT_FILENAMES = {
    ContractKind.wallet_logic: "GnosisSafe.json",
    ContractKind.proxy_factory: "GnosisSafeProxyFactory.json",
    ContractKind.recovery_module: "SocialRecoveryModule.json",
    ContractKind.module_installer: "CreateAndAddModules.json",
}


class DeploymentFailed(Exception):
    """A master copy deployment transaction failed.

    We do not retry: a blind retry may deploy and pay twice.
    """

    def __init__(self, which: ContractKind, cause: Exception | str):
        super().__init__(f"Deployment of {which.value} master copy failed: {cause}")
        self.which = which
        self.cause = cause


@dataclass(frozen=True, slots=True)
class MasterSet:
    """Deployed master copies.

    - Produced by :py:func:`deploy_master_contracts` or :py:func:`fetch_master_contracts`
      and passed explicitly to the call data composition and the proxy deployment

    - A set with any member missing is not usable and is refused by the call data composition
    """

    wallet_logic: Contract | None

    proxy_factory: Contract | None

    recovery_module: Contract | None

    module_installer: Contract | None

    def __repr__(self):
        addresses = {k.value: v for k, v in self.get_addresses().items()}
        return f"<MasterSet {addresses}>"

    def is_complete(self) -> bool:
        return all(self.get_contract(kind) is not None for kind in ContractKind)

    def get_contract(self, kind: ContractKind) -> Contract | None:
        return getattr(self, kind.value)

    def get_addresses(self) -> dict[ContractKind, HexAddress | None]:
        """Master copy addresses for logging and later reuse with :py:func:`fetch_master_contracts`."""
        result = {}
        for kind in ContractKind:
            contract = self.get_contract(kind)
            result[kind] = contract.address if contract is not None else None
        return result


def load_master_artifacts(path: Path) -> dict[ContractKind, ContractArtifact]:
    """Load the compiled master copies from a build directory.

    :param path:
        Directory containing ``GnosisSafe.json`` and friends, e.g. Truffle ``build/contracts``.
    """
    assert isinstance(path, Path), f"Expected Path, got {type(path)}"
    assert path.is_dir(), f"Not a directory: {path}"
    return {kind: load_artifact(path / kind.get_artifact_filename()) for kind in ContractKind}


def _confirm_deployment(
    web3: Web3,
    kind: ContractKind,
    contract: type[Contract],
    tx_hash: HexBytes,
    confirmation_block_count: int,
    max_timeout: datetime.timedelta,
    poll_delay: datetime.timedelta,
) -> Contract:
    try:
        receipts = wait_transactions_to_complete(
            web3,
            [tx_hash],
            confirmation_block_count=confirmation_block_count,
            max_timeout=max_timeout,
            poll_delay=poll_delay,
        )
    except ConfirmationTimedOut as e:
        raise DeploymentFailed(kind, e) from e

    receipt = receipts[tx_hash]
    try:
        instance = get_deployed_instance(contract, tx_hash, receipt)
    except ContractDeploymentFailed as e:
        try:
            reason = fetch_transaction_revert_reason(web3, tx_hash)
        except Exception as reason_e:
            logger.warning("Could not fetch revert reason for %s deployment: %s", kind.value, reason_e)
            reason = "<could not extract the revert reason>"
        raise DeploymentFailed(kind, f"{e}, revert reason: {reason}") from e

    logger.info("Master copy %s deployed at %s, tx %s", kind.value, instance.address, Web3.to_hex(tx_hash))
    return instance


def deploy_master_contracts(
    web3: Web3,
    deployer: str | LocalAccount | None,
    artifacts: Mapping[ContractKind, ContractArtifact],
    parallel=True,
    gas: int | None = None,
    confirmation_block_count=0,
    max_timeout=datetime.timedelta(minutes=5),
    poll_delay=datetime.timedelta(seconds=1),
) -> MasterSet:
    """Deploy a fresh set of Safe master copies.

    Every call deploys new contracts and pays for four transactions.
    Earlier deployments are not reused, see :py:func:`fetch_master_contracts` for that.

    Example:

    .. code-block:: python

        artifacts = load_master_artifacts(Path("build/contracts"))
        masters = deploy_master_contracts(web3, web3.eth.accounts[0], artifacts)
        print(masters.get_addresses())

    :param deployer:
        Address for node-side signing or a local account

    :param artifacts:
        Compiled contracts with bytecode

    :param parallel:
        Broadcast all deployments before waiting any of them to confirm.

        When the deployer is a local account, nonces are allocated
        from the current on-chain nonce.

    :param gas:
        Gas limit for each deployment.

        If not set, estimated by the node.

    :raise MissingSigner:
        Before any transaction is sent, if we do not have a deployer.

    :raise DeploymentFailed:
        With the contract kind that could not be deployed.
    """

    check_signer(web3, deployer)

    factories = {}
    for kind in ContractKind:
        artifact = artifacts.get(kind)
        if artifact is None:
            raise DeploymentFailed(kind, "No compiled artifact supplied")
        try:
            factories[kind] = create_contract_factory(web3, artifact, deployer)
        except MissingBytecode as e:
            raise DeploymentFailed(kind, e) from e

    if parallel and isinstance(deployer, LocalAccount):
        base_nonce = web3.eth.get_transaction_count(deployer.address)
    else:
        base_nonce = None

    logger.info("Deploying %d master copies, parallel: %s", len(factories), parallel)

    deployed = {}
    broadcasted = {}
    for idx, (kind, contract) in enumerate(factories.items()):
        nonce = base_nonce + idx if base_nonce is not None else None
        try:
            tx_hash = deploy_contract(web3, contract, deployer, gas=gas, nonce=nonce, confirm=False)
        except Exception as e:
            if broadcasted:
                logger.warning("Master copy deployment aborted, already broadcasted: %s", {k.value: Web3.to_hex(v) for k, v in broadcasted.items()})
            raise DeploymentFailed(kind, e) from e

        logger.info("Broadcasted %s master copy deployment, tx %s", kind.value, Web3.to_hex(tx_hash))
        broadcasted[kind] = tx_hash

        if not parallel:
            deployed[kind] = _confirm_deployment(web3, kind, contract, tx_hash, confirmation_block_count, max_timeout, poll_delay)

    if parallel:
        for kind, tx_hash in broadcasted.items():
            deployed[kind] = _confirm_deployment(web3, kind, factories[kind], tx_hash, confirmation_block_count, max_timeout, poll_delay)

    masters = MasterSet(**{kind.value: contract for kind, contract in deployed.items()})

    addresses = set(masters.get_addresses().values())
    assert len(addresses) == len(ContractKind), f"Master copy addresses are not distinct: {masters}"

    logger.info("All master copies deployed: %s", masters)
    return masters


def fetch_master_contracts(
    web3: Web3,
    addresses: Mapping[ContractKind | str, HexAddress | str],
) -> MasterSet:
    """Bind master copies deployed earlier.

    Uses the bundled ABI files.
    Useful when an earlier run timed out waiting, but the deployments got mined later.

    :param addresses:
        Contract kind (enum or its value) -> address
    """
    by_kind = {ContractKind(k) if isinstance(k, str) else k: v for k, v in addresses.items()}

    contracts = {}
    for kind in ContractKind:
        address = by_kind.get(kind)
        assert address, f"Address missing for {kind.value}"
        contracts[kind.value] = get_deployed_contract(web3, kind.get_artifact_filename(), address)

    return MasterSet(**contracts)
