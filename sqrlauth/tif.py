# sqrlauth/tif.py
#
# Transaction Information Flags (TIF).
#
# Every SQRL response carries a "tif" value: the bitwise OR of the outcomes
# the server observed while handling the request. The bit assignments are
# fixed by the SQRL protocol and must match real clients bit for bit.

from enum import Enum
from typing import Iterable, Iterator, Set


class TransactionInformationFlag(Enum):
    ID_MATCH = "id_match"
    PREVIOUS_ID_MATCH = "previous_id_match"
    IP_MATCHED = "ip_matched"
    SQRL_DISABLED = "sqrl_disabled"
    FUNCTION_NOT_SUPPORTED = "function_not_supported"
    TRANSIENT_ERROR = "transient_error"
    COMMAND_FAILED = "command_failed"
    CLIENT_FAILURE = "client_failure"
    BAD_ID_ASSOCIATION = "bad_id_association"

    @property
    def hex_value(self) -> int:
        return TIF_BITS[self]


TIF_BITS = {
    TransactionInformationFlag.ID_MATCH: 0x01,
    TransactionInformationFlag.PREVIOUS_ID_MATCH: 0x02,
    TransactionInformationFlag.IP_MATCHED: 0x04,
    TransactionInformationFlag.SQRL_DISABLED: 0x08,
    TransactionInformationFlag.FUNCTION_NOT_SUPPORTED: 0x10,
    TransactionInformationFlag.TRANSIENT_ERROR: 0x20,
    TransactionInformationFlag.COMMAND_FAILED: 0x40,
    TransactionInformationFlag.CLIENT_FAILURE: 0x80,
    TransactionInformationFlag.BAD_ID_ASSOCIATION: 0x100,
}


class TifSet:
    """
    Accumulator of TIF outcomes.

    Flags are independent: adding is idempotent and order does not matter.
    An empty set is valid (plain query for an unknown identity).
    """

    def __init__(self, flags: Iterable[TransactionInformationFlag] = ()):
        self._flags: Set[TransactionInformationFlag] = set()
        self.update(flags)

    def add(self, flag: TransactionInformationFlag) -> None:
        if not isinstance(flag, TransactionInformationFlag):
            raise TypeError(f"not a TIF flag: {flag!r}")
        self._flags.add(flag)

    def update(self, flags: Iterable[TransactionInformationFlag]) -> None:
        for flag in flags:
            self.add(flag)

    def to_bitmask(self) -> int:
        mask = 0
        for flag in self._flags:
            mask |= flag.hex_value
        return mask

    def __contains__(self, flag: object) -> bool:
        return flag in self._flags

    def __iter__(self) -> Iterator[TransactionInformationFlag]:
        return iter(sorted(self._flags, key=lambda f: f.hex_value))

    def __len__(self) -> int:
        return len(self._flags)

    def __repr__(self) -> str:
        names = ",".join(f.name for f in self)
        return f"TifSet({names or '-'}; tif={self.to_bitmask():#x})"


def tif_bitmask(*flags: TransactionInformationFlag) -> int:
    return TifSet(flags).to_bitmask()
