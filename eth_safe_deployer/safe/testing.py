"""Stand-in contracts for unit testing Safe deployments.

We do not ship Safe bytecode. Unit tests deploy tiny hand-assembled EVM programs
and bind them with the bundled Safe ABIs:

- an empty ``STOP`` contract, for master copies

- a proxy factory that emits ``ProxyCreation(proxy)`` on any call

- a Safe proxy that answers any call, like ``getModules()``, with a single address list

The programs ignore their call data.
"""

from eth_account.signers.local import LocalAccount
from hexbytes import HexBytes
from web3 import Web3
from web3.contract.contract import Contract

from eth_safe_deployer.abi import ContractArtifact, load_artifact
from eth_safe_deployer.deploy import create_contract_factory, deploy_contract
from eth_safe_deployer.safe.masters import ContractKind

#: STOP
STUB_RUNTIME = bytes([0x00])

#: revert(0, 0)
REVERT_RUNTIME = bytes([0x60, 0x00, 0x60, 0x00, 0xFD])

#: Length of the creation code header in :py:func:`make_init_code`
_INIT_HEADER_LENGTH = 12


def make_init_code(runtime: bytes) -> str:
    """Creation code that copies the runtime code following it to memory and returns it.

    :return:
        0x prefixed hex
    """
    size = len(runtime)
    assert size < 256, f"Runtime too long: {size}"
    header = bytes(
        [
            0x60, size,  # PUSH1 size
            0x60, _INIT_HEADER_LENGTH,  # PUSH1 offset
            0x60, 0x00,  # PUSH1 0
            0x39,  # CODECOPY
            0x60, size,  # PUSH1 size
            0x60, 0x00,  # PUSH1 0
            0xF3,  # RETURN
        ]
    )
    assert len(header) == _INIT_HEADER_LENGTH
    return Web3.to_hex(header + runtime)


def make_address_list_runtime(address: str) -> bytes:
    """Return ABI encoded ``address[]`` with one entry."""
    return (
        bytes([0x60, 0x20, 0x60, 0x00, 0x52])  # mstore(0x00, 0x20)
        + bytes([0x60, 0x01, 0x60, 0x20, 0x52])  # mstore(0x20, 1)
        + bytes([0x73])
        + bytes(HexBytes(address))
        + bytes([0x60, 0x40, 0x52])  # mstore(0x40, address)
        + bytes([0x60, 0x60, 0x60, 0x00, 0xF3])  # return(0x00, 0x60)
    )


def make_proxy_creation_runtime(proxy: str) -> bytes:
    """Emit ``ProxyCreation(proxy)`` and stop."""
    topic = bytes(Web3.keccak(text="ProxyCreation(address)"))
    return (
        bytes([0x73])
        + bytes(HexBytes(proxy))
        + bytes([0x60, 0x00, 0x52])  # mstore(0x00, proxy)
        + bytes([0x7F])
        + topic
        + bytes([0x60, 0x20, 0x60, 0x00, 0xA1])  # log1(0x00, 0x20, topic)
        + bytes([0x00])
    )


def make_stand_in_artifact(kind: ContractKind, runtime: bytes) -> ContractArtifact:
    """Bundled ABI of a contract kind with stand-in bytecode."""
    bundled = load_artifact(kind.get_artifact_filename())
    return ContractArtifact(
        name=bundled.name,
        abi=bundled.abi,
        bytecode=make_init_code(runtime),
    )


def make_stub_master_artifacts() -> dict[ContractKind, ContractArtifact]:
    """All four master copies as empty contracts."""
    return {kind: make_stand_in_artifact(kind, STUB_RUNTIME) for kind in ContractKind}


def deploy_stand_in(
    web3: Web3,
    deployer: str | LocalAccount,
    kind: ContractKind,
    runtime: bytes,
) -> Contract:
    """Deploy a stand-in program bound with the ABI of a contract kind."""
    factory = create_contract_factory(web3, make_stand_in_artifact(kind, runtime), deployer)
    return deploy_contract(web3, factory, deployer)
