"""
StealthPay - EVM Adapters
===========================
Implementazioni web3 / eth-account delle interfacce esterne.

Security Level: HIGH
Last Updated: 2026-10-19
Version: 1.0.0

Contratti:
- Payment: event StealthPaymentReceived(string indexed sourceChain,
  address indexed stealthAddress, uint256 amount, string symbol,
  bytes ephemeralPubKey, bytes1 viewHint, uint32 k)
- Registry: getMetaAddress(address) -> (bytes, bytes),
  registerMetaAddress(bytes, bytes)
- Token: ERC-20 balanceOf / transfer

Transazioni legacy (gasPrice) firmate localmente con eth_account.
Errori di trasporto → RpcFailureError.
"""

from contextlib import contextmanager
from typing import List, Optional, Tuple

import requests
from eth_abi.exceptions import DecodingError
from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3
from web3.exceptions import TimeExhausted, Web3Exception

from stealth_pay.domain.crypto_core import scalar_to_bytes, parse_private_key
from stealth_pay.domain.models import StealthPaymentEvent
from stealth_pay.errors import (
    RegistryError,
    RpcFailureError,
    ValidationError,
)
from stealth_pay.network.interfaces import TransferRequest, TxReceipt
from stealth_pay.logging_setup import get_logger


logger = get_logger("network.web3")


# ============================================================================
# ABI
# ============================================================================

PAYMENT_EVENT_SIGNATURE = "StealthPaymentReceived(string,address,uint256,string,bytes,bytes1,uint32)"

PAYMENT_EVENT_ABI = {
    "type": "event",
    "name": "StealthPaymentReceived",
    "anonymous": False,
    "inputs": [
        {"indexed": True, "name": "sourceChain", "type": "string"},
        {"indexed": True, "name": "stealthAddress", "type": "address"},
        {"indexed": False, "name": "amount", "type": "uint256"},
        {"indexed": False, "name": "symbol", "type": "string"},
        {"indexed": False, "name": "ephemeralPubKey", "type": "bytes"},
        {"indexed": False, "name": "viewHint", "type": "bytes1"},
        {"indexed": False, "name": "k", "type": "uint32"},
    ],
}

REGISTRY_ABI = [
    {
        "type": "function",
        "name": "getMetaAddress",
        "stateMutability": "view",
        "inputs": [{"name": "owner", "type": "address"}],
        "outputs": [
            {"name": "spendPubKey", "type": "bytes"},
            {"name": "viewingPubKey", "type": "bytes"},
        ],
    },
    {
        "type": "function",
        "name": "registerMetaAddress",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "spendPubKey", "type": "bytes"},
            {"name": "viewingPubKey", "type": "bytes"},
        ],
        "outputs": [],
    },
]

ERC20_ABI = [
    {
        "type": "function",
        "name": "balanceOf",
        "stateMutability": "view",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "transfer",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    },
]


# ============================================================================
# CONNECTION
# ============================================================================

def connect(rpc_url: str, timeout: int = 30) -> Web3:
    """Web3 su HTTPProvider"""
    return Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))


@contextmanager
def rpc_call(operation: str, **context):
    """
    Traduce errori di trasporto/nodo in RpcFailureError.
    """
    try:
        yield
    except TimeExhausted as e:
        raise RpcFailureError(
            f"{operation}: timed out waiting for receipt",
            code="RPC_TIMEOUT",
            details={"operation": operation, **context}
        ) from e
    except (Web3Exception, requests.exceptions.RequestException, ConnectionError, ValueError) as e:
        raise RpcFailureError(
            f"{operation} failed: {e}",
            code="RPC_FAILURE",
            details={"operation": operation, **context}
        ) from e


def _account(private_key):
    return Account.from_key(scalar_to_bytes(parse_private_key(private_key)))


# ============================================================================
# PAYMENT LOG SOURCE
# ============================================================================

class Web3PaymentLogSource:
    """
    PaymentLogSource su eth_getLogs.

    `source_chain` contiene l'hash del topic indicizzato (le stringhe
    indicizzate non sono recuperabili dal log).
    """

    def __init__(self, w3: Web3, contract_address: str):
        self.w3 = w3
        self.contract_address = Web3.to_checksum_address(contract_address)
        self.contract = w3.eth.contract(address=self.contract_address, abi=[PAYMENT_EVENT_ABI])
        self.topic0 = Web3.to_hex(Web3.keccak(text=PAYMENT_EVENT_SIGNATURE))

    def get_block_number(self) -> int:
        with rpc_call("eth_blockNumber"):
            return self.w3.eth.block_number

    def get_payment_events(self, from_block: int, to_block: int) -> List[StealthPaymentEvent]:
        with rpc_call("eth_getLogs", from_block=from_block, to_block=to_block):
            logs = self.w3.eth.get_logs({
                "address": self.contract_address,
                "fromBlock": from_block,
                "toBlock": to_block,
                "topics": [self.topic0],
            })

        events = []
        for log in logs:
            try:
                decoded = self.contract.events.StealthPaymentReceived().process_log(log)
                args = decoded["args"]
                view_hint = bytes(args["viewHint"])
                events.append(StealthPaymentEvent(
                    stealth_address=Web3.to_checksum_address(args["stealthAddress"]),
                    ephemeral_public_key=bytes(args["ephemeralPubKey"]),
                    view_hint=view_hint[0] if view_hint else -1,
                    k=int(args["k"]),
                    amount=int(args["amount"]),
                    symbol=args["symbol"],
                    block_number=int(decoded["blockNumber"]),
                    tx_hash=Web3.to_hex(decoded["transactionHash"]),
                    log_index=int(decoded["logIndex"]),
                    source_chain=Web3.to_hex(args["sourceChain"]),
                ))
            except (Web3Exception, DecodingError, ValidationError, ValueError, KeyError) as e:
                logger.warning(
                    "Skipping undecodable payment log",
                    extra_data={"tx_hash": Web3.to_hex(log.get("transactionHash", b"")), "error": str(e)}
                )
        return events


# ============================================================================
# META-ADDRESS REGISTRY
# ============================================================================

class Web3MetaAddressRegistry:
    """MetaAddressRegistry su contratto registry"""

    def __init__(
        self,
        w3: Web3,
        contract_address: str,
        chain_id: int,
        gas_price: Optional[int] = None,
        confirmation_timeout: int = 120
    ):
        self.w3 = w3
        self.chain_id = chain_id
        self.gas_price = gas_price
        self.confirmation_timeout = confirmation_timeout
        self.contract = w3.eth.contract(address=Web3.to_checksum_address(contract_address), abi=REGISTRY_ABI)

    def get_meta_address(self, owner: str) -> Tuple[bytes, bytes]:
        with rpc_call("getMetaAddress", owner=owner):
            spend, viewing = self.contract.functions.getMetaAddress(Web3.to_checksum_address(owner)).call()
        return bytes(spend), bytes(viewing)

    def register_meta_address(self, spend_public_key: bytes, viewing_public_key: bytes, private_key: int) -> str:
        account = _account(private_key)

        with rpc_call("registerMetaAddress", owner=account.address):
            tx = self.contract.functions.registerMetaAddress(
                bytes(spend_public_key), bytes(viewing_public_key)
            ).build_transaction({
                "from": account.address,
                "nonce": self.w3.eth.get_transaction_count(account.address, "pending"),
                "chainId": self.chain_id,
                "gasPrice": self.gas_price or self.w3.eth.gas_price,
            })
            signed = account.sign_transaction(tx)
            tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
            receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.confirmation_timeout)

        if receipt["status"] != 1:
            raise RegistryError(
                "registerMetaAddress reverted",
                code="REGISTRY_REVERTED",
                details={"tx_hash": Web3.to_hex(tx_hash)}
            )
        return Web3.to_hex(tx_hash)


# ============================================================================
# TRANSACTION BROADCASTER
# ============================================================================

class Web3TransactionBroadcaster:
    """TransactionBroadcaster: firma locale, invio raw, attesa receipt"""

    def __init__(self, w3: Web3, chain_id: int, confirmation_timeout: int = 120):
        self.w3 = w3
        self.chain_id = chain_id
        self.confirmation_timeout = confirmation_timeout

    def _token(self, token_address: str):
        return self.w3.eth.contract(address=Web3.to_checksum_address(token_address), abi=ERC20_ABI)

    def get_gas_price(self) -> int:
        with rpc_call("eth_gasPrice"):
            return self.w3.eth.gas_price

    def get_native_balance(self, address: str) -> int:
        with rpc_call("eth_getBalance", address=address):
            return self.w3.eth.get_balance(Web3.to_checksum_address(address))

    def get_token_balance(self, token_address: str, address: str) -> int:
        with rpc_call("balanceOf", token=token_address, address=address):
            return self._token(token_address).functions.balanceOf(Web3.to_checksum_address(address)).call()

    def get_transaction_count(self, address: str) -> int:
        with rpc_call("eth_getTransactionCount", address=address):
            return self.w3.eth.get_transaction_count(Web3.to_checksum_address(address))

    def send_transaction(self, request: TransferRequest) -> TxReceipt:
        account = _account(request.private_key)
        to = Web3.to_checksum_address(request.to)

        with rpc_call("send_transaction", sender=account.address, to=to):
            nonce = self.w3.eth.get_transaction_count(account.address, "pending")
            params = {
                "from": account.address,
                "nonce": nonce,
                "gas": request.gas_limit,
                "gasPrice": request.gas_price,
                "chainId": self.chain_id,
            }

            if request.is_token_transfer:
                tx = self._token(request.token_address).functions.transfer(
                    to, request.token_amount
                ).build_transaction(params)
            else:
                tx = {**params, "to": to, "value": request.value}
                del tx["from"]

            signed = account.sign_transaction(tx)
            tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
            receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.confirmation_timeout)

        return TxReceipt(
            tx_hash=Web3.to_hex(tx_hash),
            status=receipt["status"] == 1,
            block_number=receipt["blockNumber"],
            gas_used=receipt["gasUsed"],
        )


# ============================================================================
# SIGNATURE SOURCE
# ============================================================================

class LocalAccountSignatureSource:
    """
    SignatureSource su chiave locale (EIP-191 personal_sign).

    Examples:
        >>> source = LocalAccountSignatureSource(1)
        >>> source.address
        '0x7E5F4552091A69125d5DfCb7b8C2659029395Bdf'
    """

    def __init__(self, private_key):
        self._account = _account(private_key)

    @property
    def address(self) -> str:
        return self._account.address

    def sign(self, message: str) -> bytes:
        signed = self._account.sign_message(encode_defunct(text=message))
        return bytes(signed.signature)


__all__ = [
    "PAYMENT_EVENT_ABI",
    "PAYMENT_EVENT_SIGNATURE",
    "REGISTRY_ABI",
    "ERC20_ABI",
    "connect",
    "rpc_call",
    "Web3PaymentLogSource",
    "Web3MetaAddressRegistry",
    "Web3TransactionBroadcaster",
    "LocalAccountSignatureSource",
]
