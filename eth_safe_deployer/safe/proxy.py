"""Deploy a Safe wallet proxy with the social recovery module installed.

- One ``GnosisSafeProxyFactory.createProxy()`` transaction creates the wallet,
  creates the recovery module proxy and enables it

- The new wallet address is only known from the ``ProxyCreation`` event

- The installed modules are read back for diagnostics
"""

import datetime
import logging
from dataclasses import dataclass, field
from typing import Sequence

from eth_account.signers.local import LocalAccount
from eth_typing import HexAddress
from hexbytes import HexBytes
from web3 import Web3
from web3.contract.contract import Contract

from eth_safe_deployer.confirmation import ConfirmationTimedOut, wait_transactions_to_complete
from eth_safe_deployer.deploy import check_signer
from eth_safe_deployer.event import decode_receipt_event
from eth_safe_deployer.revert_reason import fetch_transaction_revert_reason
from eth_safe_deployer.safe.calldata import (
    DEFAULT_GUARDIAN_THRESHOLD,
    DEFAULT_OWNER_THRESHOLD,
    ComposedCallData,
    MissingMasterSet,
    compose_wallet_setup,
)
from eth_safe_deployer.safe.masters import MasterSet
from eth_safe_deployer.tx import send_bound_call

logger = logging.getLogger(__name__)


#: Event the proxy factory emits for every new proxy
PROXY_CREATION_EVENT = "ProxyCreation"

#: Field of :py:data:`PROXY_CREATION_EVENT` holding the new proxy address
PROXY_CREATION_FIELD = "proxy"


class ProxyCreationFailed(Exception):
    """The wallet proxy creation transaction did not go through."""

    def __init__(self, tx_hash: HexBytes | None, msg: str):
        super().__init__(msg)
        self.tx_hash = tx_hash


@dataclass(slots=True)
class WalletProxyDeployment:
    """A deployed Safe wallet proxy."""

    #: The new wallet address
    address: HexAddress

    #: The wallet proxy bound with the wallet logic ABI
    contract: Contract

    #: createProxy() transaction
    tx_hash: HexBytes

    #: createProxy() receipt
    receipt: dict

    #: Call data used to set up the wallet
    call_data: ComposedCallData

    #: Modules reported by the wallet after the creation
    modules: list[HexAddress] = field(default_factory=list)

    #: How many modules we meant to install
    expected_module_count: int = 1

    def __repr__(self):
        return f"<WalletProxyDeployment {self.address}, modules {self.modules}>"

    def is_module_count_ok(self) -> bool:
        return len(self.modules) == self.expected_module_count


def fetch_wallet_modules(wallet: Contract) -> list[HexAddress]:
    """Read the enabled modules of a Safe.

    :param wallet:
        Safe proxy bound with the wallet logic ABI
    """
    return [Web3.to_checksum_address(a) for a in wallet.functions.getModules().call()]


def deploy_wallet_proxy(
    web3: Web3,
    deployer: str | LocalAccount | None,
    masters: MasterSet | None,
    accounts: Sequence[HexAddress | str],
    owner_threshold: int = DEFAULT_OWNER_THRESHOLD,
    guardian_threshold: int = DEFAULT_GUARDIAN_THRESHOLD,
    expected_module_count: int = 1,
    gas: int | None = None,
    confirmation_block_count=0,
    max_timeout=datetime.timedelta(minutes=5),
    poll_delay=datetime.timedelta(seconds=1),
) -> WalletProxyDeployment:
    """Create a new Safe wallet with the social recovery module.

    - Compose the nested call data, see :py:func:`eth_safe_deployer.safe.calldata.compose_wallet_setup`

    - Send ``createProxy(walletLogic, walletSetup)`` to the proxy factory and wait for the receipt

    - Read the new proxy address from the ``ProxyCreation`` event

    - Check the installed modules; a wrong count is only logged

    Example:

    .. code-block:: python

        masters = deploy_master_contracts(web3, deployer, artifacts)
        wallet = deploy_wallet_proxy(web3, deployer, masters, web3.eth.accounts[0:3])
        print(f"Safe deployed at {wallet.address}, modules {wallet.modules}")

    :param deployer:
        Address for node-side signing or a local account

    :param masters:
        Deployed master copies

    :param accounts:
        Owner at index 0, guardians and co-owners at 1 and 2

    :param expected_module_count:
        How many modules the wallet should report after creation

    :raise MissingMasterSet:
        Master copies not deployed yet.

    :raise MissingSigner:
        No deployer.

    :raise EncodingFailed:
        Call data could not be composed. Nothing was sent.

    :raise ProxyCreationFailed:
        The transaction could not be broadcast, reverted, or was not confirmed in time.

    :raise EventNotFound:
        The transaction succeeded but no ``ProxyCreation`` event was emitted.
    """

    if masters is None:
        raise MissingMasterSet("Master copies must be deployed before deploying a wallet proxy")

    check_signer(web3, deployer)

    call_data = compose_wallet_setup(
        masters,
        accounts,
        owner_threshold=owner_threshold,
        guardian_threshold=guardian_threshold,
    )

    proxy_factory = masters.proxy_factory
    wallet_logic = masters.wallet_logic

    bound_call = proxy_factory.functions.createProxy(wallet_logic.address, call_data.wallet_setup)

    logger.info(
        "Creating Safe proxy using factory %s, master copy %s, setup data %d bytes",
        proxy_factory.address,
        wallet_logic.address,
        len(call_data.wallet_setup),
    )

    try:
        tx_hash = send_bound_call(web3, bound_call, deployer, gas=gas)
    except Exception as e:
        raise ProxyCreationFailed(None, f"Could not broadcast createProxy() to factory {proxy_factory.address}: {e}") from e

    try:
        receipts = wait_transactions_to_complete(
            web3,
            [tx_hash],
            confirmation_block_count=confirmation_block_count,
            max_timeout=max_timeout,
            poll_delay=poll_delay,
        )
    except ConfirmationTimedOut as e:
        raise ProxyCreationFailed(tx_hash, f"createProxy() tx {Web3.to_hex(tx_hash)} not confirmed. It may still be mined later, check the factory events before retrying.") from e

    receipt = receipts[tx_hash]
    if receipt["status"] != 1:
        try:
            reason = fetch_transaction_revert_reason(web3, tx_hash)
        except Exception as e:
            logger.warning("Could not fetch revert reason for createProxy() tx %s: %s", Web3.to_hex(tx_hash), e)
            reason = "<could not extract the revert reason>"
        raise ProxyCreationFailed(tx_hash, f"createProxy() tx {Web3.to_hex(tx_hash)} reverted: {reason}")

    proxy_address = decode_receipt_event(
        web3,
        proxy_factory,
        receipt,
        PROXY_CREATION_EVENT,
        PROXY_CREATION_FIELD,
    )
    proxy_address = Web3.to_checksum_address(proxy_address)

    wallet = web3.eth.contract(address=proxy_address, abi=wallet_logic.abi)
    modules = fetch_wallet_modules(wallet)

    deployment = WalletProxyDeployment(
        address=proxy_address,
        contract=wallet,
        tx_hash=tx_hash,
        receipt=receipt,
        call_data=call_data,
        modules=modules,
        expected_module_count=expected_module_count,
    )

    if not deployment.is_module_count_ok():
        logger.warning(
            "Safe %s reports %d modules %s, expected %d",
            proxy_address,
            len(modules),
            modules,
            expected_module_count,
        )
    else:
        logger.info("%d module(s) installed at %s", len(modules), modules)

    logger.info("Safe wallet proxy deployed at %s, tx %s", proxy_address, Web3.to_hex(tx_hash))
    return deployment
