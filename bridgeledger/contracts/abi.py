"""
Bridge Vault ABI

Function signatures of the vault methods the ledger uses, plus helpers to
build call data and decode return data.
"""

from dataclasses import dataclass
from typing import Any, Dict, Tuple

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import keccak, to_checksum_address

from ..exceptions import DecodeError
from ..ledger.types import RecordFamily


@dataclass(frozen=True)
class VaultFunction:
    """
    A vault method: canonical signature plus return types.

    Attributes:
        signature: Canonical signature, e.g. "depositsOut(uint256)"
        output_types: ABI types of the return tuple
    """
    signature: str
    output_types: Tuple[str, ...] = ()

    @property
    def name(self) -> str:
        return self.signature[:self.signature.index('(')]

    @property
    def input_types(self) -> Tuple[str, ...]:
        args = self.signature[self.signature.index('(') + 1:self.signature.index(')')]
        return tuple(t.strip() for t in args.split(',')) if args else ()

    @property
    def selector(self) -> bytes:
        return compute_function_selector(self.signature)


GET_HOLDER_BRIDGE_OUT_HISTORY = VaultFunction(
    "getHolderBridgeOutHistory(address,uint256,uint256)", ("uint256[]",)
)
GET_HOLDER_BRIDGE_IN_HISTORY = VaultFunction(
    "getHolderBridgeInHistory(address,uint256,uint256)", ("uint256[]",)
)
GET_HOLDER_ANCIENT_HISTORY = VaultFunction(
    "getHolderAncientHistory(address,uint256,uint256)", ("uint256[]",)
)

DEPOSITS_OUT = VaultFunction(
    "depositsOut(uint256)",
    ("uint256", "address", "uint256", "string", "string", "uint8", "string", "uint256"),
)
DEPOSITS_IN = VaultFunction(
    "depositsIn(uint256)",
    ("uint256", "address", "uint256", "address", "string", "uint8", "string", "uint256"),
)
ANCIENT_WRAP_OPERATIONS = VaultFunction(
    "ancientWrapOperations(uint256)",
    ("uint256", "address", "uint256", "uint8", "uint256", "uint256"),
)

CANCEL_BRIDGE = VaultFunction("cancelBridge(uint256)")


HISTORY_FUNCTIONS: Dict[RecordFamily, VaultFunction] = {
    RecordFamily.BRIDGE_OUT: GET_HOLDER_BRIDGE_OUT_HISTORY,
    RecordFamily.BRIDGE_IN: GET_HOLDER_BRIDGE_IN_HISTORY,
    RecordFamily.WRAP_OP: GET_HOLDER_ANCIENT_HISTORY,
}

RECORD_FUNCTIONS: Dict[RecordFamily, VaultFunction] = {
    RecordFamily.BRIDGE_OUT: DEPOSITS_OUT,
    RecordFamily.BRIDGE_IN: DEPOSITS_IN,
    RecordFamily.WRAP_OP: ANCIENT_WRAP_OPERATIONS,
}


def compute_function_selector(function_signature: str) -> bytes:
    """
    Compute Ethereum function selector (first 4 bytes of keccak256(sig)).

    Args:
        function_signature: Function signature like "depositsOut(uint256)"

    Returns:
        4-byte function selector
    """
    return keccak(text=function_signature)[:4]


def encode_call(function: VaultFunction, *args: Any) -> str:
    """
    Encode call data (selector + ABI-encoded arguments) as 0x-hex.
    """
    if function.input_types:
        encoded_args = encode(list(function.input_types), list(args))
    else:
        encoded_args = b''
    return '0x' + (function.selector + encoded_args).hex()


def decode_result(function: VaultFunction, data: str) -> Tuple:
    """
    Decode 0x-hex return data into a tuple of Python values.

    Addresses come back checksummed.

    Raises:
        DecodeError: empty or malformed return data
    """
    raw = data[2:] if data.startswith('0x') else data
    if not raw:
        raise DecodeError(f"{function.name}: empty return data")
    try:
        values = decode(list(function.output_types), bytes.fromhex(raw))
    except (DecodingError, ValueError) as e:
        raise DecodeError(f"{function.name}: {e}")
    return tuple(
        to_checksum_address(v) if t == "address" else v
        for t, v in zip(function.output_types, values)
    )
