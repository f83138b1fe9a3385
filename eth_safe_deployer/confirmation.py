"""Transaction block confirmation and completion monitoring.

- Wait for multiple transactions to be confirmed and read back the results from the blockchain

- Giving up waiting does not cancel a transaction: it may still be mined later
"""

import datetime
import logging
import time
from typing import Collection, Dict, Set

from hexbytes import HexBytes
from web3 import Web3
from web3.exceptions import TransactionNotFound


logger = logging.getLogger(__name__)


class ConfirmationTimedOut(Exception):
    """We exceeded the transaction confirmation timeout."""


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def wait_transactions_to_complete(
    web3: Web3,
    txs: Collection[HexBytes | str],
    confirmation_block_count: int = 0,
    max_timeout=datetime.timedelta(minutes=5),
    poll_delay=datetime.timedelta(seconds=1),
) -> Dict[HexBytes, dict]:
    """Watch multiple transactions executed at parallel.

    Use simple poll loop to wait all transactions to complete.

    Example:

    .. code-block:: python

        tx_hash1 = send_bound_call(web3, Contract.constructor(), deployer)
        tx_hash2 = send_bound_call(web3, Contract.constructor(), deployer)

        complete = wait_transactions_to_complete(web3, [tx_hash1, tx_hash2])

        # Check both transaction succeeded
        for receipt in complete.values():
            assert receipt["status"] == 1  # tx success

    :param txs:
        List of transaction hashes

    :param confirmation_block_count:
        How many blocks wait for the transaction receipt to settle.
        Set to zero to return as soon as we see the first transaction receipt.

    :raise ConfirmationTimedOut:
        If we do not see all receipts within ``max_timeout``.

    :return:
        Map of transaction hashes -> receipt
    """

    assert isinstance(poll_delay, datetime.timedelta)
    assert isinstance(max_timeout, datetime.timedelta)
    assert isinstance(confirmation_block_count, int)

    logger.info("Waiting %d transactions to confirm in %d blocks, timeout is %s", len(txs), confirmation_block_count, max_timeout)

    started_at = _now()

    receipts_received = {}

    unconfirmed_txs: Set[HexBytes] = {HexBytes(tx) for tx in txs}

    while len(unconfirmed_txs) > 0:
        # Transaction hashes that receive confirmation on this round
        confirmation_received = set()

        for tx_hash in unconfirmed_txs:
            try:
                receipt = web3.eth.get_transaction_receipt(tx_hash)
            except TransactionNotFound as e:
                logger.debug("Transaction not found yet: %s", e)
                receipt = None

            if receipt:
                tx_confirmations = web3.eth.block_number - receipt["blockNumber"]
                if tx_confirmations >= confirmation_block_count:
                    logger.debug("Confirmed tx %s with %d confirmations", Web3.to_hex(tx_hash), tx_confirmations)
                    confirmation_received.add(tx_hash)
                    receipts_received[tx_hash] = receipt
                else:
                    logger.debug("Still waiting more confirmations. Tx %s with %d confirmations, %d needed", Web3.to_hex(tx_hash), tx_confirmations, confirmation_block_count)

        # Remove confirmed txs from the working set
        unconfirmed_txs -= confirmation_received

        if unconfirmed_txs:
            if _now() > started_at + max_timeout:
                unconfirmed_tx_strs = ", ".join([Web3.to_hex(tx_hash) for tx_hash in unconfirmed_txs])
                raise ConfirmationTimedOut(f"Transaction confirmation failed. Started: {started_at}, timed out after {max_timeout} ({max_timeout.total_seconds()}s). Still unconfirmed: {unconfirmed_tx_strs}. The transactions may still be mined later.")

            time.sleep(poll_delay.total_seconds())

    return receipts_received
