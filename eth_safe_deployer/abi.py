"""ABI and compiled artifact loading.

Provides functions to load compiled contract artifacts and construct :py:class:`web3.contract.Contract` types.
Bundled ABI files are cached for the speedup.

We also provide some helper functions to deal with ABI encode/decode.

The package bundles ABI-only copies of the Safe contracts we deal with in ``eth_safe_deployer/abi``.
They are enough to compose call data and read deployed contracts.
Bytecode for deployments must be supplied as compiler artifacts,
see :py:func:`load_artifact`.
"""

import json
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Sequence, Type

import eth_abi
from eth_typing import HexAddress
from eth_utils import function_abi_to_4byte_selector
from eth_utils.abi import collapse_if_tuple
from hexbytes import HexBytes
from web3 import Web3
from web3.contract.contract import Contract

# How big are our ABI caches
_CACHE_SIZE = 64


#: Ethereum 0x0000000000000000000000000000000000000000 address as a string.
ZERO_ADDRESS_STR = "0x0000000000000000000000000000000000000000"


@dataclass(frozen=True, slots=True)
class ContractArtifact:
    """Compiled contract interface and deployable bytecode.

    - Loaded once per contract kind and never modified

    - ``bytecode`` is ``None`` for ABI-only artifacts, like the bundled ones
      or copy-pasted Etherscan ABI
    """

    #: Contract name, used in logging and error messages
    name: str

    #: ABI as a list of function and event entries
    abi: tuple

    #: Creation bytecode, 0x prefixed hex
    bytecode: str | None = None

    def __repr__(self):
        return f"<ContractArtifact {self.name}, {len(self.abi)} ABI entries, bytecode {'present' if self.bytecode else 'missing'}>"

    def has_bytecode(self) -> bool:
        return bool(self.bytecode) and self.bytecode not in ("0x", "0x0")


@lru_cache(maxsize=_CACHE_SIZE)
def get_abi_by_filename(fname: str) -> dict | list:
    """Reads a embedded ABI file and returns it.

    Example::

        abi = get_abi_by_filename("GnosisSafe.json")

    Loaded ABI files are cache in in-process memory to speed up future loading.

    :param fname:
        JSON filename in ``eth_safe_deployer/abi``.

    :return:
        Parsed JSON content
    """

    here = Path(__file__).resolve().parent
    abi_path = here / "abi" / Path(fname)
    with open(abi_path, "rt", encoding="utf-8") as f:
        abi = json.load(f)
    return abi


def parse_artifact(name: str, contract_interface: dict | list) -> ContractArtifact:
    """Create an artifact from a parsed JSON blob.

    Supports

    - Truffle and solc output where ``bytecode`` is a hex string

    - Forge output where ``bytecode`` is a dict with ``object`` key

    - Etherscan copy-pasted ABI list, without bytecode

    :param name:
        Human readable contract name

    :param contract_interface:
        Parsed JSON
    """

    if type(contract_interface) == list:
        # Etherscan
        abi = contract_interface
        bytecode = None
    else:
        abi = contract_interface["abi"]
        bytecode = contract_interface.get("bytecode")

        if type(bytecode) == dict:
            # Sol 0.8 / Forge
            # Contains keys object, sourceMap, linkReferences
            bytecode = bytecode["object"]

        name = contract_interface.get("contractName", name)

    if bytecode and not bytecode.startswith("0x"):
        bytecode = "0x" + bytecode

    return ContractArtifact(
        name=name,
        abi=tuple(abi),
        bytecode=bytecode or None,
    )


def load_artifact(fname: str | Path) -> ContractArtifact:
    """Load a compiled contract artifact.

    Read from

    - Our bundled ABI files in the Python package, when given a plain filename like ``GnosisSafe.json``

    - Filesystem using a :py:class:`Path` or a path containing a directory part

    Example:

    .. code-block:: python

        artifact = load_artifact(Path("build/contracts/GnosisSafe.json"))
        assert artifact.has_bytecode()

    :param fname:
        Bundled filename or a path to the compiler output.

    :return:
        Parsed artifact
    """

    if isinstance(fname, Path) or "/" in fname:
        path = Path(fname)
        with open(path, "rt", encoding="utf-8") as f:
            contract_interface = json.load(f)
        name = path.stem
    else:
        contract_interface = get_abi_by_filename(fname)
        name = fname.replace(".json", "")

    return parse_artifact(name, contract_interface)


def get_contract(
    web3: Web3,
    artifact: ContractArtifact | str,
) -> Type[Contract]:
    """Get Contract proxy class from an artifact.

    `See Web3.py documentation on Contract instances <https://web3py.readthedocs.io/en/stable/contracts.html#contract-deployment-example>`_.

    :param web3:
        Web3 instance

    :param artifact:
        Loaded artifact or a bundled ABI filename

    :return:
        Contract proxy class
    """
    if isinstance(artifact, str):
        artifact = load_artifact(artifact)

    return web3.eth.contract(abi=list(artifact.abi), bytecode=artifact.bytecode)


def get_deployed_contract(
    web3: Web3,
    artifact: ContractArtifact | str,
    address: HexAddress | str,
) -> Contract:
    """Get a Contract proxy object for a contract deployed at a specific address.

    :param web3:
        Web3 instance

    :param artifact:
        Loaded artifact or a bundled ABI filename

    :param address:
        Ethereum address of the deployed contract

    :return:
        `web3.contract.Contract` proxy
    """
    assert isinstance(web3, Web3), f"Got {type(web3)} instead of Web3"
    assert address, f"get_deployed_contract() address was None"

    address = Web3.to_checksum_address(address)

    Contract = get_contract(web3, artifact)
    return Contract(address)


def get_function_abi_by_name(abi: Sequence[dict], function_name: str) -> dict | None:
    """Get function ABI by its name.

    On overloaded functions, return the first one declared in the ABI.
    """
    for item in abi:
        if item.get("type") == "function" and item.get("name") == function_name:
            return item
    return None


def get_event_abi_by_name(abi: Sequence[dict], event_name: str) -> dict | None:
    """Get event ABI by its name."""
    for item in abi:
        if item.get("type") == "event" and item.get("name") == event_name:
            return item
    return None


def get_abi_input_types(fn_abi: dict) -> list[str]:
    """Get Solidity argument types of a function or an event ABI entry.

    Tuples are collapsed to ``(type1,type2)`` form understood by :py:mod:`eth_abi`.
    """
    return [collapse_if_tuple(i) for i in fn_abi.get("inputs", [])]


def get_abi_input_names(fn_abi: dict) -> list[str]:
    return [i["name"] for i in fn_abi.get("inputs", [])]


def encode_function_abi_call(fn_abi: dict, args: Sequence) -> HexBytes:
    """Encode function selector + its arguments as data payload.

    This is a Python equivalent for Solidity `abi.encodeWithSelector()`.

    Example:

    .. code-block:: python

        fn_abi = get_function_abi_by_name(proxy_factory.abi, "createProxy")
        payload = encode_function_abi_call(fn_abi, [master_copy_address, b""])

    :param fn_abi:
        Function ABI entry

    :param args:
        Argument values to be encoded, in the ABI order

    :return:
        Solidity's function selector + argument payload.
    """
    assert type(args) in (tuple, list), f"Got {type(args)}"
    arg_types = get_abi_input_types(fn_abi)
    fn_selector = function_abi_to_4byte_selector(fn_abi)
    encoded_args = eth_abi.encode(arg_types, args)
    return HexBytes(fn_selector + encoded_args)


def get_function_selector(fn_abi: dict) -> bytes:
    """Get Solidity function selector.

    :return:
        First 32-bit (4 bytes) keccak hash of the function signature.
    """
    return function_abi_to_4byte_selector(fn_abi)


def _checksum_decoded(abi_type: str, value: Any) -> Any:
    # eth_abi decodes addresses as lowercase hex
    if abi_type == "address":
        return Web3.to_checksum_address(value)

    if abi_type.endswith("]"):
        item_type = abi_type[: abi_type.rindex("[")]
        return tuple(_checksum_decoded(item_type, v) for v in value)

    return value


def decode_function_args(
    fn_abi: dict,
    data: bytes | HexBytes,
) -> dict:
    """Decode binary CALL or CALLDATA to a Solidity function,

    Addresses, also inside arrays, are returned checksummed like
    ``Contract.decode_function_input()`` does.

    :param fn_abi:
        Function ABI entry

    :param data:
        Encoded arguments without the function selector.

    :return:
        Ordered dict of the decoded arguments
    """
    arg_names = get_abi_input_names(fn_abi)
    arg_types = get_abi_input_types(fn_abi)
    arg_tuple = eth_abi.decode(arg_types, data)
    return {name: _checksum_decoded(abi_type, value) for name, abi_type, value in zip(arg_names, arg_types, arg_tuple)}
