from dataclasses import dataclass
from typing import List

from hexbytes import HexBytes


@dataclass(frozen=True)
class Function:
    """
    Contract function callable through `eth_call`

    :param function_signature_hash: 4-byte selector, the first bytes of the keccak
        hash of the canonical signature
    :param description: Human readable signature with return types
    :param param_types: ABI types of the ordered parameters
    :param return_types: ABI types of the ordered return values
    :param is_view: The function does not modify state
    """

    function_signature_hash: HexBytes
    description: str
    param_types: List[str]
    return_types: List[str]
    is_view: bool


class Erc721MetadataFunctions:
    TOKEN_URI = Function(
        HexBytes("0xc87b56dd"),
        "tokenURI(uint256)->(string)",
        ["uint256"],
        ["string"],
        True,
    )
