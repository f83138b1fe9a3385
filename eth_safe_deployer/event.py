"""Typed event extraction from transaction receipts.

- Match events by their declared ABI name and the emitting contract

- Fail loudly if the event is not there, instead of returning a placeholder
"""

import logging
from typing import Any

from eth_utils import event_abi_to_log_topic
from hexbytes import HexBytes
from web3 import Web3
from web3._utils.events import get_event_data
from web3.contract.contract import Contract

from eth_safe_deployer.abi import get_event_abi_by_name

logger = logging.getLogger(__name__)


class EventNotFound(Exception):
    """Transaction receipt does not contain the event we expect.

    Treated as an integrity error: the transaction went through,
    but we cannot tell what it did.
    """

    def __init__(self, msg: str, event_name: str, field_name: str | None = None):
        super().__init__(msg)
        self.event_name = event_name
        self.field_name = field_name


def decode_receipt_events(
    web3: Web3,
    contract: Contract,
    receipt: dict,
    event_name: str,
) -> list[dict]:
    """Decode all instances of an event emitted by a contract in a receipt.

    Logs are scanned in the receipt order.
    Logs emitted by other contracts, or with a different topic, are ignored.

    :param contract:
        The emitting contract, bound to an address

    :param receipt:
        Transaction receipt

    :param event_name:
        Event name as declared in the contract ABI

    :raise EventNotFound:
        If the contract ABI does not declare the event.

    :return:
        List of decoded event args
    """
    event_abi = get_event_abi_by_name(contract.abi, event_name)
    if event_abi is None:
        raise EventNotFound(f"Contract ABI at {contract.address} does not declare event {event_name}", event_name)

    topic = HexBytes(event_abi_to_log_topic(event_abi))
    emitter = Web3.to_checksum_address(contract.address)

    decoded = []
    for log in receipt["logs"]:
        topics = log["topics"]
        if not topics or HexBytes(topics[0]) != topic:
            continue

        if Web3.to_checksum_address(log["address"]) != emitter:
            logger.debug("Skipping %s emitted by %s, expected %s", event_name, log["address"], emitter)
            continue

        data = get_event_data(web3.codec, event_abi, log)
        decoded.append(data["args"])

    return decoded


def decode_receipt_event(
    web3: Web3,
    contract: Contract,
    receipt: dict,
    event_name: str,
    field_name: str,
) -> Any:
    """Get a field of an event emitted in a transaction.

    Example:

    .. code-block:: python

        receipt = web3.eth.get_transaction_receipt(tx_hash)
        proxy_address = decode_receipt_event(web3, proxy_factory, receipt, "ProxyCreation", "proxy")

    :return:
        The decoded field value of the first matching event.

    :raise EventNotFound:
        If no matching event was emitted or the event does not have the field.
    """
    events = decode_receipt_events(web3, contract, receipt, event_name)

    if not events:
        tx_hash = receipt.get("transactionHash")
        tx_hash_str = Web3.to_hex(HexBytes(tx_hash)) if tx_hash else "<unknown>"
        raise EventNotFound(
            f"Transaction {tx_hash_str} did not emit {event_name} from {contract.address}. Receipt has {len(receipt['logs'])} logs.",
            event_name,
            field_name,
        )

    if len(events) > 1:
        logger.warning("Transaction emitted %d %s events, using the first one", len(events), event_name)

    args = events[0]
    if field_name not in args:
        raise EventNotFound(f"Event {event_name} does not have field {field_name}, has {list(args.keys())}", event_name, field_name)

    return args[field_name]
