"""Classes to integrate with the click library"""

import typing as t
from urllib.parse import urlparse

from click import ParamType, Parameter, Context

from tokenimages.core.types import Address

BLOCK_TAGS = ("latest", "earliest", "pending", "safe", "finalized")


class AddressParamType(ParamType):
    """Click param type to parse input data and produce Address instances"""

    name = "Address"

    def convert(
        self, value: t.Any, param: t.Optional["Parameter"], ctx: t.Optional["Context"]
    ) -> t.Any:
        if isinstance(value, str) and value.startswith("0x") and len(value) == 42:
            try:
                lowered = value.lower()
                bytes.fromhex(lowered[2:])
                return Address(lowered)
            except ValueError:
                pass

        self.fail(f'Invalid value "{value}"! Must be a hexadecimal string of 20 bytes')


class HttpUrlParamType(ParamType):
    """Click param type accepting HTTP(S) URLs. Trailing slashes are removed."""

    name = "HttpUrl"

    def convert(
        self, value: t.Any, param: t.Optional["Parameter"], ctx: t.Optional["Context"]
    ) -> t.Any:
        if isinstance(value, str):
            parsed = urlparse(value)
            if parsed.scheme in ("http", "https") and parsed.netloc:
                return value.rstrip("/")

        self.fail(f'Invalid value "{value}"! Must be an HTTP or HTTPS URL')


class BlockTagParamType(ParamType):
    """
    Click param type for the block of an `eth_call`. Block tags are returned as-is and
    block numbers, integer or hexadecimal, are returned as hexadecimal strings.
    """

    name = "BlockTag"

    def convert(
        self, value: t.Any, param: t.Optional["Parameter"], ctx: t.Optional["Context"]
    ) -> t.Any:
        if value in BLOCK_TAGS:
            return value
        try:
            if isinstance(value, str) and value.startswith("0x"):
                return hex(int(value, 16))
            elif not isinstance(value, bool):
                return hex(int(value))
        except ValueError:
            pass

        self.fail(
            f'Invalid value "{value}"! Must be one of {", ".join(BLOCK_TAGS)} '
            "or a block number"
        )
