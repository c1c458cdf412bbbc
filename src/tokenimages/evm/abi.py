"""Encoding of contract call data and decoding of contract return data"""

from typing import Optional

from eth_abi import encode
from eth_utils import decode_hex, encode_hex, remove_0x_prefix

from .types import Erc721MetadataFunctions, Function

WORD_HEX_LENGTH = 64
"""Number of hexadecimal characters in a 32-byte ABI word"""


def encode_call_data(function: Function, *parameters) -> str:
    """
    Build the `data` value of an `eth_call` for the function and its ordered
    parameters: the 4-byte function selector followed by the ABI encoded parameters.

    :returns: 0x prefixed hexadecimal string
    """
    if len(parameters) == 0:
        encoded_params = b""
    else:
        encoded_params = encode(function.param_types, list(parameters))
    return encode_hex(bytes(function.function_signature_hash) + encoded_params)


def encode_token_uri_call(token_id: int) -> str:
    """
    Call data for `tokenURI(uint256)`. For example::

        encode_token_uri_call(1)

    will return `0xc87b56dd` followed by 63 zeros and a `1`.
    """
    return encode_call_data(Erc721MetadataFunctions.TOKEN_URI, token_id)


def decode_string(hex_data: str) -> Optional[str]:
    """
    Decode the return data of a function returning a single dynamic `string`.

    The first word holds the offset and is skipped. The second word holds the byte
    length of the string and the UTF-8 bytes follow it. Return data shorter than two
    words has no value and returns None.

    :raises ValueError: the data is not valid hexadecimal or UTF-8
    """
    data = remove_0x_prefix(hex_data)
    if len(data) < 2 * WORD_HEX_LENGTH:
        return None
    length = int(data[WORD_HEX_LENGTH : 2 * WORD_HEX_LENGTH], 16)  # NOQA: E203
    start = 2 * WORD_HEX_LENGTH
    string_bytes = decode_hex(data[start : start + length * 2])  # NOQA: E203
    return string_bytes.decode("utf8")
