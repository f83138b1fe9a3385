"""Compose nested Safe initialisation call data.

A Safe wallet with a social recovery module is created with a single ``createProxy()`` transaction.
The call data is nested four layers deep and must be computed inside out:

1. ``SocialRecoveryModule.setup(friends, threshold)`` - guardians and their threshold

2. ``GnosisSafeProxyFactory.createProxy(recoveryModuleMaster, <1>)`` - creates the module proxy

3. ``CreateAndAddModules.createAndAddModules(proxyFactory, reduce([<2>]))`` - delegate called by the Safe during its setup,
   creates the modules and enables them

4. ``GnosisSafe.setup(owners, threshold, createAndAddModules, <3>, 0x0, 0x0, 0, 0x0)`` - the Safe initialiser
   passed to the final ``createProxy()``

All functions here are pure: no chain access, same inputs give the same bytes.
Nothing is cached, as master copy addresses change between deployment runs.

Safe contracts v1.1.1:

- https://github.com/safe-global/safe-smart-account/blob/v1.1.1/contracts/GnosisSafe.sol
- https://github.com/safe-global/safe-smart-account/blob/v1.1.1/contracts/libraries/CreateAndAddModules.sol
"""

import enum
import logging
from dataclasses import dataclass
from typing import Sequence

import eth_abi
from eth_typing import HexAddress
from hexbytes import HexBytes
from web3 import Web3
from web3.contract.contract import Contract

from eth_safe_deployer.abi import (
    ZERO_ADDRESS_STR,
    decode_function_args,
    encode_function_abi_call,
    get_abi_input_types,
    get_function_abi_by_name,
    get_function_selector,
)
from eth_safe_deployer.safe.masters import ContractKind, MasterSet

logger = logging.getLogger(__name__)


#: Owner index 0 is the primary owner, 1 and 2 are guardians and co-owners
MIN_ACCOUNTS = 3

#: Default Safe owner threshold.
#:
#: A single owner can operate the wallet, the recovery module guards with its own threshold.
DEFAULT_OWNER_THRESHOLD = 1

#: Default social recovery threshold
DEFAULT_GUARDIAN_THRESHOLD = 2


class CompositionStep(enum.Enum):
    """Layers of the nested call data, innermost first."""

    recovery_setup = "recovery_setup"
    proxy_creation = "proxy_creation"
    module_installation = "module_installation"
    wallet_setup = "wallet_setup"


class MissingMasterSet(Exception):
    """Master copies have not been deployed yet."""


class EncodingFailed(Exception):
    """Could not compose call data for a step.

    Composition is deterministic, so retrying with the same inputs fails the same way.
    """

    def __init__(self, step: CompositionStep, cause: Exception | str):
        super().__init__(f"Call data composition failed at step {step.value}: {cause}")
        self.step = step
        self.cause = cause


#: Function name and argument types each step expects from the contract ABI.
#:
#: Encoding is positional, so the argument order is a part of the contract.
EXPECTED_FUNCTIONS: dict[CompositionStep, tuple[str, list[str]]] = {
    CompositionStep.recovery_setup: ("setup", ["address[]", "uint256"]),
    CompositionStep.proxy_creation: ("createProxy", ["address", "bytes"]),
    CompositionStep.module_installation: ("createAndAddModules", ["address", "bytes"]),
    CompositionStep.wallet_setup: ("setup", ["address[]", "uint256", "address", "bytes", "address", "address", "uint256", "address"]),
}


@dataclass(frozen=True, slots=True)
class ComposedCallData:
    """All layers of the Safe initialisation call data."""

    #: SocialRecoveryModule.setup()
    recovery_setup: HexBytes

    #: GnosisSafeProxyFactory.createProxy() for the recovery module
    module_proxy_creation: HexBytes

    #: Reduced module creation payloads fed to createAndAddModules()
    modules_data: HexBytes

    #: CreateAndAddModules.createAndAddModules()
    module_installation: HexBytes

    #: GnosisSafe.setup(), passed to the final createProxy()
    wallet_setup: HexBytes


def _get_master(masters: MasterSet | None, field: str, step: CompositionStep) -> Contract:
    if masters is None:
        raise EncodingFailed(step, MissingMasterSet("Master copies are not deployed"))

    if not masters.is_complete():
        missing = [kind.value for kind in ContractKind if masters.get_contract(kind) is None]
        raise EncodingFailed(step, f"Master set is missing {', '.join(missing)}")

    return getattr(masters, field)


def _get_function_abi(contract: Contract, step: CompositionStep) -> dict:
    fn_name, expected_types = EXPECTED_FUNCTIONS[step]
    fn_abi = get_function_abi_by_name(contract.abi, fn_name)
    if fn_abi is None:
        raise EncodingFailed(step, f"Contract at {contract.address} does not expose {fn_name}()")

    types = get_abi_input_types(fn_abi)
    if types != expected_types:
        raise EncodingFailed(step, f"{fn_name}() has arguments {types}, expected {expected_types}")

    return fn_abi


def _encode(step: CompositionStep, fn_abi: dict, args: list) -> HexBytes:
    try:
        payload = encode_function_abi_call(fn_abi, args)
    except Exception as e:
        raise EncodingFailed(step, e) from e

    logger.debug("Encoded %s: %s(), %d bytes", step.value, fn_abi["name"], len(payload))
    return payload


def _checksum_accounts(accounts: Sequence[HexAddress | str], step: CompositionStep) -> list[HexAddress]:
    if len(accounts) < MIN_ACCOUNTS:
        raise EncodingFailed(step, f"Need at least {MIN_ACCOUNTS} accounts, got {len(accounts)}")

    try:
        return [Web3.to_checksum_address(a) for a in accounts]
    except (ValueError, TypeError) as e:
        raise EncodingFailed(step, e) from e


def encode_recovery_setup(
    masters: MasterSet | None,
    accounts: Sequence[HexAddress | str],
    threshold: int = DEFAULT_GUARDIAN_THRESHOLD,
) -> HexBytes:
    """Encode ``SocialRecoveryModule.setup(friends, threshold)``.

    Guardians are ``accounts[1]`` and ``accounts[2]``.

    We refuse a threshold the guardians cannot reach here, instead of letting the Safe setup revert on-chain.

    :raise EncodingFailed:
        On missing masters, bad ABI, too few accounts or unreachable threshold.
    """
    step = CompositionStep.recovery_setup
    recovery_module = _get_master(masters, "recovery_module", step)
    fn_abi = _get_function_abi(recovery_module, step)
    accounts = _checksum_accounts(accounts, step)

    guardians = [accounts[1], accounts[2]]

    if threshold < 1:
        raise EncodingFailed(step, f"Guardian threshold must be at least 1, got {threshold}")

    if len(guardians) < threshold:
        raise EncodingFailed(step, f"Guardian threshold {threshold} cannot be met by {len(guardians)} guardians")

    return _encode(step, fn_abi, [guardians, threshold])


def encode_module_proxy_creation(
    masters: MasterSet | None,
    recovery_setup_data: bytes,
) -> HexBytes:
    """Encode ``GnosisSafeProxyFactory.createProxy(recoveryModuleMaster, setupData)``.

    This is not sent as a transaction. ``CreateAndAddModules`` calls the proxy factory with it
    while the Safe is being set up.
    """
    step = CompositionStep.proxy_creation
    recovery_module = _get_master(masters, "recovery_module", step)
    proxy_factory = _get_master(masters, "proxy_factory", step)
    fn_abi = _get_function_abi(proxy_factory, step)
    return _encode(step, fn_abi, [recovery_module.address, bytes(recovery_setup_data)])


def reduce_module_creation_data(payloads: Sequence[bytes]) -> HexBytes:
    """Pack module creation calls to the format ``CreateAndAddModules`` reads.

    ``CreateAndAddModules.createAndAddModules()`` walks its ``data`` argument
    as a list of ``length (32 bytes) || call data padded to 32 bytes`` chunks.
    Each chunk is what ``ModuleDataWrapper.setup(bytes)`` call data would be
    after the 4-byte selector and the 32-byte offset word are cut off.

    - Input order is preserved

    - A single payload produces exactly one chunk

    :param payloads:
        ``createProxy()`` call data for each module

    :raise EncodingFailed:
        If there are no modules to create.
    """
    step = CompositionStep.module_installation

    if len(payloads) == 0:
        raise EncodingFailed(step, "No module creation payloads given")

    chunks = []
    for payload in payloads:
        # Offset word goes, length word and padded data stay
        encoded = eth_abi.encode(["bytes"], [bytes(payload)])
        chunks.append(encoded[32:])

    return HexBytes(b"".join(chunks))


def encode_module_installation(
    masters: MasterSet | None,
    module_payloads: Sequence[bytes],
) -> HexBytes:
    """Encode ``CreateAndAddModules.createAndAddModules(proxyFactory, data)``.

    :param module_payloads:
        One ``createProxy()`` payload per module, see :py:func:`encode_module_proxy_creation`
    """
    step = CompositionStep.module_installation
    module_installer = _get_master(masters, "module_installer", step)
    proxy_factory = _get_master(masters, "proxy_factory", step)
    fn_abi = _get_function_abi(module_installer, step)
    modules_data = reduce_module_creation_data(module_payloads)
    return _encode(step, fn_abi, [proxy_factory.address, modules_data])


def encode_wallet_setup(
    masters: MasterSet | None,
    accounts: Sequence[HexAddress | str],
    module_installation_data: bytes,
    threshold: int = DEFAULT_OWNER_THRESHOLD,
) -> HexBytes:
    """Encode ``GnosisSafe.setup()``.

    - Owners are ``accounts[0]``, ``accounts[1]`` and ``accounts[2]``

    - The Safe delegate calls ``CreateAndAddModules`` with the module installation data during the setup

    - No fallback handler and no setup payment
    """
    step = CompositionStep.wallet_setup
    wallet_logic = _get_master(masters, "wallet_logic", step)
    module_installer = _get_master(masters, "module_installer", step)
    fn_abi = _get_function_abi(wallet_logic, step)
    accounts = _checksum_accounts(accounts, step)

    owners = [accounts[0], accounts[1], accounts[2]]

    if not 1 <= threshold <= len(owners):
        raise EncodingFailed(step, f"Owner threshold {threshold} is not within 1...{len(owners)}")

    args = [
        owners,
        threshold,
        module_installer.address,
        bytes(module_installation_data),
        ZERO_ADDRESS_STR,  # fallbackHandler
        ZERO_ADDRESS_STR,  # paymentToken
        0,  # payment
        ZERO_ADDRESS_STR,  # paymentReceiver
    ]
    return _encode(step, fn_abi, args)


def compose_wallet_setup(
    masters: MasterSet | None,
    accounts: Sequence[HexAddress | str],
    owner_threshold: int = DEFAULT_OWNER_THRESHOLD,
    guardian_threshold: int = DEFAULT_GUARDIAN_THRESHOLD,
) -> ComposedCallData:
    """Run the whole call data pipeline, innermost layer first.

    Example:

    .. code-block:: python

        call_data = compose_wallet_setup(masters, web3.eth.accounts)
        masters.proxy_factory.functions.createProxy(
            masters.wallet_logic.address,
            call_data.wallet_setup,
        ).transact({"from": deployer})

    :param masters:
        Deployed master copies

    :param accounts:
        Owner and guardian accounts, at least three

    :raise EncodingFailed:
        With the step that failed.
    """
    recovery_setup = encode_recovery_setup(masters, accounts, guardian_threshold)
    module_proxy_creation = encode_module_proxy_creation(masters, recovery_setup)
    module_payloads = [module_proxy_creation]
    module_installation = encode_module_installation(masters, module_payloads)
    wallet_setup = encode_wallet_setup(masters, accounts, module_installation, owner_threshold)

    logger.info(
        "Composed Safe setup for owners %s, owner threshold %d, guardian threshold %d, setup payload %d bytes",
        list(accounts[0:MIN_ACCOUNTS]),
        owner_threshold,
        guardian_threshold,
        len(wallet_setup),
    )

    return ComposedCallData(
        recovery_setup=recovery_setup,
        module_proxy_creation=module_proxy_creation,
        modules_data=reduce_module_creation_data(module_payloads),
        module_installation=module_installation,
        wallet_setup=wallet_setup,
    )


def decode_call_data(contract: Contract, data: bytes) -> tuple[str, dict]:
    """Decode call data back to a function name and its arguments.

    Useful to verify what we are about to send.

    :param contract:
        Contract whose ABI declares the called function

    :param data:
        Function selector + encoded arguments

    :return:
        Tuple (function name, ordered dict of arguments)
    """
    data = bytes(data)
    selector = data[0:4]
    for item in contract.abi:
        if item.get("type") != "function":
            continue
        if get_function_selector(item) == selector:
            return item["name"], decode_function_args(item, data[4:])

    raise ValueError(f"Selector {Web3.to_hex(selector)} not found in contract ABI")
