"""Deploy Safe master copies and a Safe wallet with the social recovery module.

- Deploy GnosisSafe, GnosisSafeProxyFactory, SocialRecoveryModule and CreateAndAddModules master copies,
  or reuse earlier ones

- Create a Safe proxy owned by the first three node accounts,
  the second and the third account being the recovery guardians

Works against a local development node (Ganache, Anvil, Hardhat) that exposes unlocked accounts.

Environment variables

``JSON_RPC_URL``
    Node URL. Defaults to ``http://localhost:8545``.

``SAFE_ARTIFACTS_PATH``
    Directory with compiled ``GnosisSafe.json``, ``GnosisSafeProxyFactory.json``,
    ``SocialRecoveryModule.json`` and ``CreateAndAddModules.json``.
    Needed unless ``MASTER_ADDRESSES`` is given.

``PRIVATE_KEY``
    Optional deployer private key. If not set, the first node account signs.

``MASTER_ADDRESSES``
    Optional JSON object, e.g. ``{"wallet_logic": "0x...", "proxy_factory": "0x...", ...}``,
    to reuse master copies deployed earlier.

``CONFIRMATION_BLOCKS``
    How many blocks to wait for each transaction. Defaults to 0.

To run:

.. code-block:: shell

    export SAFE_ARTIFACTS_PATH=~/code/safe-contracts/build/contracts
    LOG_LEVEL=info python scripts/deploy-safe-with-recovery.py
"""

import json
import logging
import os
from pathlib import Path

from eth_account import Account
from web3 import HTTPProvider, Web3

from eth_safe_deployer.safe.masters import deploy_master_contracts, fetch_master_contracts, load_master_artifacts
from eth_safe_deployer.safe.proxy import deploy_wallet_proxy
from eth_safe_deployer.utils import setup_console_logging

logger = logging.getLogger(__name__)


def main():
    setup_console_logging(default_log_level="info")

    json_rpc_url = os.environ.get("JSON_RPC_URL", "http://localhost:8545")
    artifacts_path = os.environ.get("SAFE_ARTIFACTS_PATH")
    private_key = os.environ.get("PRIVATE_KEY")
    master_addresses = os.environ.get("MASTER_ADDRESSES")
    confirmation_blocks = int(os.environ.get("CONFIRMATION_BLOCKS", "0"))

    web3 = Web3(HTTPProvider(json_rpc_url))
    print(f"Connected to blockchain, chain id is {web3.eth.chain_id}. the latest block is {web3.eth.block_number:,}")

    accounts = web3.eth.accounts
    assert len(accounts) >= 3, f"Node must expose at least three accounts, got {accounts}"

    if private_key:
        assert private_key.startswith("0x"), "Private key must start with 0x hex prefix"
        deployer = Account.from_key(private_key)
        print(f"Deploying from local account {deployer.address}")
    else:
        deployer = accounts[0]
        print(f"Deploying from node account {deployer}")

    if master_addresses:
        masters = fetch_master_contracts(web3, json.loads(master_addresses))
        print(f"Reusing master copies {masters}")
    else:
        assert artifacts_path, "Set SAFE_ARTIFACTS_PATH or MASTER_ADDRESSES"
        artifacts = load_master_artifacts(Path(artifacts_path).expanduser())
        masters = deploy_master_contracts(
            web3,
            deployer,
            artifacts,
            confirmation_block_count=confirmation_blocks,
        )
        addresses = {kind.value: address for kind, address in masters.get_addresses().items()}
        print(f"Master copies deployed. Reuse them with:\nexport MASTER_ADDRESSES='{json.dumps(addresses)}'")

    wallet = deploy_wallet_proxy(
        web3,
        deployer,
        masters,
        accounts[0:3],
        confirmation_block_count=confirmation_blocks,
    )

    print(f"Safe deployed at {wallet.address}")
    print(f"Owners: {wallet.contract.functions.getOwners().call()}")
    print(f"{len(wallet.modules)} module(s) installed at {wallet.modules}")


if __name__ == "__main__":
    main()
