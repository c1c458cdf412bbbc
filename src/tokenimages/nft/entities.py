from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class Resolved:
    token_id: int
    url: str


@dataclass(frozen=True)
class Unresolved:
    """
    No image URL for the token. `error` holds the exception that stopped resolution,
    or is None when the token URI or image field was empty.
    """

    token_id: int
    error: Optional[Exception] = None


ResolutionOutcome = Union[Resolved, Unresolved]
