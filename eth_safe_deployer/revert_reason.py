"""Revert reason extraction.

Further reading

- `Web3.py Patterns: Revert Reason Lookups <https://snakecharmers.ethereum.org/web3py-revert-reason-parsing/>`_

"""

import logging

from hexbytes import HexBytes
from web3 import Web3
from web3.exceptions import ContractLogicError, TransactionNotFound

logger = logging.getLogger(__name__)


def fetch_transaction_revert_reason(
    web3: Web3,
    tx_hash: HexBytes | str,
    unknown_error_message="<could not extract the revert reason>",
) -> str:
    """Gets a transaction revert reason.

    Ethereum nodes do not store the transaction failure reason in any database or index.
    We replay the transaction against the current state. No archive node is needed, but the revert reason might be wrong.

    :param web3: Our JSON-RPC connection

    :param tx_hash: Transaction hash of which reason we extract by simulation.

    :param unknown_error_message:
        Return this message if the revert reason extraction fails.
        Check the logs for details.

    :return: The revert reason of the placeholder message if we could not extract the reason somehow.
    """

    if not isinstance(tx_hash, HexBytes):
        tx_hash = HexBytes(tx_hash)

    try:
        tx = web3.eth.get_transaction(tx_hash)
    except TransactionNotFound:
        logger.warning("Cannot fetch revert reason, transaction %s not found", Web3.to_hex(tx_hash))
        return unknown_error_message

    replay_tx = {
        "from": tx["from"],
        "value": tx["value"],
        "data": tx.get("input", tx.get("data")),
        "gas": tx["gas"],
    }

    # Contract creation has no to field
    if tx.get("to"):
        replay_tx["to"] = tx["to"]

    try:
        web3.eth.call(replay_tx)
    except ContractLogicError as e:
        # Web3 6.0
        return e.args[0]
    except ValueError as e:
        logger.debug("Revert exception result is: %s", e)
        data = e.args[0] if e.args else str(e)
        if type(data) == str:
            return data
        elif type(data) == dict and "message" in data:
            return data["message"]
        return str(data)
    except Exception as e:
        # Ethereum Tester TransactionFailed, Web3 7.0 Web3RPCError
        logger.debug("Replay of %s failed with %s: %s", Web3.to_hex(tx_hash), type(e).__name__, e)
        return str(e.args[0]) if e.args else type(e).__name__

    logger.error("Transaction %s did not revert when we replayed it to fetch its revert reason", Web3.to_hex(tx_hash))
    return unknown_error_message
