"""
Deploy the TaskStaking contract.

One-off script: reads the compiled Foundry artifact, deploys it with the
platform wallet and minimum stake as constructor arguments and waits for the
receipt. Defaults target a local Anvil node; override with flags or env vars.

Usage:
    python scripts/deploy.py
    python scripts/deploy.py --rpc-url http://127.0.0.1:8545 --min-stake 0.05
"""

import os
import sys
import json
import logging
import argparse

from web3 import Web3

logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger("deploy")

# Anvil's well-known development accounts (#0 deploys, #1 is the platform wallet)
ANVIL_DEPLOYER_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
ANVIL_PLATFORM_WALLET = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"

DEFAULT_ARTIFACT = os.path.join("contracts", "out", "TaskStaking.sol", "TaskStaking.json")
DEFAULT_MIN_STAKE_ETH = "0.01"


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Deploy the TaskStaking contract")
    parser.add_argument("--rpc-url", default=os.getenv("LEDGER_RPC_URL", "http://127.0.0.1:8545"))
    parser.add_argument("--artifact", default=os.getenv("CONTRACT_ARTIFACT", DEFAULT_ARTIFACT))
    parser.add_argument("--platform-wallet", default=os.getenv("PLATFORM_WALLET_ADDRESS", ANVIL_PLATFORM_WALLET))
    parser.add_argument("--min-stake", default=os.getenv("MINIMUM_STAKE_ETH", DEFAULT_MIN_STAKE_ETH),
                        help="minimum stake in ETH")
    parser.add_argument("--timeout", type=int, default=int(os.getenv("LEDGER_RECEIPT_TIMEOUT", 120)))
    return parser.parse_args(argv)


def load_artifact(path):
    with open(path, "r") as f:
        artifact = json.load(f)
    bytecode = artifact["bytecode"]
    if isinstance(bytecode, dict):
        bytecode = bytecode["object"]
    return artifact["abi"], bytecode


def deploy(w3, private_key, abi, bytecode, platform_wallet, min_stake_wei, timeout):
    account = w3.eth.account.from_key(private_key)
    contract = w3.eth.contract(abi=abi, bytecode=bytecode)
    tx = contract.constructor(Web3.to_checksum_address(platform_wallet), min_stake_wei).build_transaction({
        "from": account.address,
        "nonce": w3.eth.get_transaction_count(account.address),
        "chainId": w3.eth.chain_id,
    })
    signed = account.sign_transaction(tx)
    tx_hash = w3.eth.send_raw_transaction(signed.raw_transaction)
    logger.info(f"\nTransaction sent! Hash: {Web3.to_hex(tx_hash)}")
    logger.info("Waiting for transaction to be mined...")

    receipt = w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
    if receipt["status"] != 1:
        raise RuntimeError("Deployment transaction reverted.")
    if not receipt.get("contractAddress"):
        raise RuntimeError("Contract address not found in receipt.")
    return receipt["contractAddress"]


def main(argv=None):
    args = parse_args(argv)
    private_key = os.getenv("DEPLOYER_PRIVATE_KEY", ANVIL_DEPLOYER_KEY)

    w3 = Web3(Web3.HTTPProvider(args.rpc_url))
    account = w3.eth.account.from_key(private_key)
    balance = w3.eth.get_balance(account.address)
    logger.info(f"Deployer address: {account.address}")
    logger.info(f"Deployer balance: {Web3.from_wei(balance, 'ether')} ETH")
    logger.info("\nDeploying TaskStaking contract...")
    logger.info(f"  Platform Wallet: {args.platform_wallet}")
    logger.info(f"  Minimum Stake: {args.min_stake} ETH")

    abi, bytecode = load_artifact(args.artifact)
    address = deploy(
        w3, private_key, abi, bytecode,
        args.platform_wallet, Web3.to_wei(args.min_stake, "ether"), args.timeout,
    )
    logger.info("Contract deployed successfully!")
    logger.info(f"Contract Address: {address}")
    return address


if __name__ == "__main__":
    try:
        main()
    except Exception as e:
        logger.error(f"Deployment failed: {e}")
        sys.exit(1)
