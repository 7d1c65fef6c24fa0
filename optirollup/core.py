"""
Core data structures: transaction variants, their compressed wire form,
signature messages and the transition ``Result`` contract.
"""
from dataclasses import dataclass, asdict
from enum import Enum, IntEnum
from typing import ClassVar, Union

from .codec import FLOAT16
from .crypto import generate_hash
from .errors import EncodingError
from .merkle import merkle_root

INDEX_BYTES = 4
AMOUNT_BYTES = FLOAT16.bytes_length
WORD_BYTES = 32


class Result(Enum):
    """Outcome of a single state transition."""
    Ok = 0
    BadSignature = 1
    BadFromTokenType = 2
    NotEnoughBalance = 3
    AlreadyBurnedThisPeriod = 4
    InvalidTokenType = 5
    AmountNotEncodable = 6
    IndexMismatch = 7

    @property
    def ok(self) -> bool:
        return self is Result.Ok


class TxType(IntEnum):
    """Usage tags; also the first word of every signature message."""
    TRANSFER = 1
    CREATE2TRANSFER = 3
    MASS_MIGRATION = 5
    BURN_EXECUTION = 7


def _word(value: int) -> bytes:
    return value.to_bytes(WORD_BYTES, 'big')


def _index(value: int) -> bytes:
    return value.to_bytes(INDEX_BYTES, 'big')


@dataclass(frozen=True)
class Transfer:
    TX_TYPE: ClassVar[TxType] = TxType.TRANSFER
    COMPRESSED_LENGTH: ClassVar[int] = 2 * INDEX_BYTES + 2 * AMOUNT_BYTES

    from_index: int
    to_index: int
    amount: bytes
    fee: bytes
    nonce: int = 0

    @classmethod
    def build(cls, from_index: int, to_index: int, amount: int, fee: int, nonce: int = 0) -> 'Transfer':
        """Build from integer amounts; raises EncodingError if they are not representable."""
        return cls(from_index, to_index, FLOAT16.encode(amount), FLOAT16.encode(fee), nonce)

    def compress(self) -> bytes:
        return _index(self.from_index) + _index(self.to_index) + self.amount + self.fee

    @classmethod
    def decompress(cls, data: bytes) -> 'Transfer':
        return cls(
            from_index=int.from_bytes(data[0:4], 'big'),
            to_index=int.from_bytes(data[4:8], 'big'),
            amount=bytes(data[8:10]),
            fee=bytes(data[10:12]),
        )

    def message(self, nonce: int) -> bytes:
        return b''.join(_word(v) for v in (
            self.TX_TYPE, self.from_index, self.to_index, nonce,
            FLOAT16.decode(self.amount), FLOAT16.decode(self.fee),
        ))


@dataclass(frozen=True)
class MassMigration:
    TX_TYPE: ClassVar[TxType] = TxType.MASS_MIGRATION
    COMPRESSED_LENGTH: ClassVar[int] = 2 * INDEX_BYTES + 2 * AMOUNT_BYTES

    from_index: int
    amount: bytes
    fee: bytes
    spoke_id: int
    nonce: int = 0

    @classmethod
    def build(cls, from_index: int, amount: int, fee: int, spoke_id: int, nonce: int = 0) -> 'MassMigration':
        return cls(from_index, FLOAT16.encode(amount), FLOAT16.encode(fee), spoke_id, nonce)

    def compress(self) -> bytes:
        return _index(self.from_index) + self.amount + self.fee + _index(self.spoke_id)

    @classmethod
    def decompress(cls, data: bytes) -> 'MassMigration':
        return cls(
            from_index=int.from_bytes(data[0:4], 'big'),
            amount=bytes(data[4:6]),
            fee=bytes(data[6:8]),
            spoke_id=int.from_bytes(data[8:12], 'big'),
        )

    def message(self, nonce: int) -> bytes:
        return b''.join(_word(v) for v in (
            self.TX_TYPE, self.from_index, self.spoke_id, nonce,
            FLOAT16.decode(self.amount), FLOAT16.decode(self.fee),
        ))


@dataclass(frozen=True)
class Create2Transfer:
    TX_TYPE: ClassVar[TxType] = TxType.CREATE2TRANSFER
    COMPRESSED_LENGTH: ClassVar[int] = 3 * INDEX_BYTES + 2 * AMOUNT_BYTES

    from_index: int
    to_index: int
    to_account_id: int
    amount: bytes
    fee: bytes
    nonce: int = 0

    @classmethod
    def build(cls, from_index: int, to_index: int, to_account_id: int,
              amount: int, fee: int, nonce: int = 0) -> 'Create2Transfer':
        return cls(from_index, to_index, to_account_id, FLOAT16.encode(amount), FLOAT16.encode(fee), nonce)

    def compress(self) -> bytes:
        return (_index(self.from_index) + _index(self.to_index) + _index(self.to_account_id)
                + self.amount + self.fee)

    @classmethod
    def decompress(cls, data: bytes) -> 'Create2Transfer':
        return cls(
            from_index=int.from_bytes(data[0:4], 'big'),
            to_index=int.from_bytes(data[4:8], 'big'),
            to_account_id=int.from_bytes(data[8:12], 'big'),
            amount=bytes(data[12:14]),
            fee=bytes(data[14:16]),
        )

    def message(self, nonce: int) -> bytes:
        # The destination slot is chosen by the proposer and is not signed
        return b''.join(_word(v) for v in (
            self.TX_TYPE, self.from_index, self.to_account_id, nonce,
            FLOAT16.decode(self.amount), FLOAT16.decode(self.fee),
        ))


@dataclass(frozen=True)
class BurnExecution:
    TX_TYPE: ClassVar[TxType] = TxType.BURN_EXECUTION
    COMPRESSED_LENGTH: ClassVar[int] = INDEX_BYTES

    from_index: int

    @classmethod
    def build(cls, from_index: int) -> 'BurnExecution':
        return cls(from_index)

    def compress(self) -> bytes:
        return _index(self.from_index)

    @classmethod
    def decompress(cls, data: bytes) -> 'BurnExecution':
        return cls(from_index=int.from_bytes(data[0:4], 'big'))


Tx = Union[Transfer, MassMigration, Create2Transfer, BurnExecution]

TX_CLASSES = {
    TxType.TRANSFER: Transfer,
    TxType.MASS_MIGRATION: MassMigration,
    TxType.CREATE2TRANSFER: Create2Transfer,
    TxType.BURN_EXECUTION: BurnExecution,
}

SIGNED_TX_TYPES = (Transfer, MassMigration, Create2Transfer)
RECEIVING_TX_TYPES = (Transfer, Create2Transfer)


def is_signed(tx: Tx) -> bool:
    return isinstance(tx, SIGNED_TX_TYPES)


def has_receiver(tx: Tx) -> bool:
    """True if the transaction credits a second slot of the state tree."""
    return isinstance(tx, RECEIVING_TX_TYPES)


def state_indices(tx: Tx) -> tuple[int, ...]:
    """Every state tree slot the transaction touches, sender first."""
    if has_receiver(tx):
        return tx.from_index, tx.to_index
    return (tx.from_index,)


def compress(tx: Tx) -> bytes:
    return tx.compress()


def decompress(tx_type: TxType, data: bytes) -> Tx:
    cls = TX_CLASSES[TxType(tx_type)]
    if len(data) != cls.COMPRESSED_LENGTH:
        raise EncodingError(f"{cls.__name__} is {cls.COMPRESSED_LENGTH} bytes, got {len(data)}")
    return cls.decompress(data)


def compress_batch(txs: list[Tx]) -> bytes:
    return b''.join(tx.compress() for tx in txs)


def decompress_batch(tx_type: TxType, data: bytes) -> list[Tx]:
    """Split a batch of same-type compressed transactions."""
    cls = TX_CLASSES[TxType(tx_type)]
    size = cls.COMPRESSED_LENGTH
    if len(data) % size != 0:
        raise EncodingError(f"Batch length {len(data)} is not a multiple of {size}")
    return [cls.decompress(data[i:i + size]) for i in range(0, len(data), size)]


def tx_hash(tx: Tx) -> bytes:
    """The unique hash identifier of the transaction."""
    return generate_hash(tx.compress())


def tx_root(txs: list[Tx]) -> bytes:
    """Merkle root over the batch's compressed encodings."""
    return merkle_root([tx_hash(tx) for tx in txs])


def to_dict(tx: Tx) -> dict:
    data = asdict(tx)
    for name in ('amount', 'fee'):
        if name in data:
            data[name] = data[name].hex()
    data['tx_type'] = tx.TX_TYPE.name
    return data


def from_dict(data: dict) -> Tx:
    """Creates a transaction object from a dictionary."""
    fields = dict(data)
    cls = TX_CLASSES[TxType[fields.pop('tx_type')]]
    for name in ('amount', 'fee'):
        if name in fields:
            fields[name] = bytes.fromhex(fields[name])
    return cls(**fields)
