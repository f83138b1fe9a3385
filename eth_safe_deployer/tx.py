"""Transaction signing and broadcasting utilities."""

import logging

from eth_account.datastructures import SignedTransaction
from eth_account.signers.local import LocalAccount
from hexbytes import HexBytes
from web3 import Web3
from web3.contract.contract import ContractConstructor, ContractFunction

logger = logging.getLogger(__name__)


def get_tx_broadcast_data(signed_tx: SignedTransaction) -> HexBytes:
    """Get raw transaction bytes with compatibility for attribute name changes.

    eth_account changed rawTransaction to raw_transaction in newer versions.
    This function handles both attribute names.

    :return:
        Raw transaction bytes ready for broadcasting to the network
    """
    if hasattr(signed_tx, "raw_transaction"):
        return signed_tx.raw_transaction
    return signed_tx.rawTransaction


def get_sender_address(sender: str | LocalAccount) -> str:
    """Get the address of a node-side account or a local account."""
    if isinstance(sender, LocalAccount):
        return sender.address
    return sender


def send_bound_call(
    web3: Web3,
    bound_call: ContractFunction | ContractConstructor,
    sender: str | LocalAccount,
    gas: int | None = None,
    nonce: int | None = None,
) -> HexBytes:
    """Broadcast a contract call or a contract constructor.

    - If the sender is :py:class:`LocalAccount`, sign locally and use ``eth_sendRawTransaction``

    - If the sender is an address string, delegate signing to the node (Anvil, Ethereum Tester)
      using ``eth_sendTransaction``

    :param bound_call:
        ``contract.functions.foo(args)`` or ``Contract.constructor(args)``

    :param sender:
        Address or a local account

    :param gas:
        Gas limit.

        If not set the node estimates it and we may hit reverts when doing so.

    :param nonce:
        Use this nonce for a local account.

        If not given, read the current nonce from the chain.
        Needed when broadcasting several transactions before any of them confirms.

    :return:
        Transaction hash
    """
    if isinstance(sender, LocalAccount):
        if nonce is None:
            nonce = web3.eth.get_transaction_count(sender.address)
        tx_params = {
            "from": sender.address,
            "nonce": nonce,
            "chainId": web3.eth.chain_id,
        }
        if gas:
            tx_params["gas"] = gas
        tx_data = bound_call.build_transaction(tx_params)
        signed_tx = sender.sign_transaction(tx_data)
        raw_bytes = get_tx_broadcast_data(signed_tx)
        tx_hash = web3.eth.send_raw_transaction(raw_bytes)
    else:
        tx_params = {"from": sender}
        if gas:
            tx_params["gas"] = gas
        tx_hash = bound_call.transact(tx_params)

    logger.debug("Broadcasted %s from %s, tx hash %s", type(bound_call).__name__, get_sender_address(sender), Web3.to_hex(tx_hash))
    return HexBytes(tx_hash)
