"""
Account leaf of the rollup state tree.
"""
from dataclasses import dataclass, replace

from .codec import STATE_AMOUNT
from .crypto import generate_hash
from .errors import StateDecodeError

UINT32_MAX = 2 ** 32 - 1

# pubkey_index | token_type | balance | nonce | burn | last_burn
STATE_LAYOUT = (
    ('pubkey_index', 4),
    ('token_type', 4),
    ('balance', STATE_AMOUNT.bytes_length),
    ('nonce', 4),
    ('burn', STATE_AMOUNT.bytes_length),
    ('last_burn', 4),
)
STATE_LENGTH = sum(width for _, width in STATE_LAYOUT)
AMOUNT_FIELDS = ('balance', 'burn')


@dataclass(frozen=True)
class AccountState:
    pubkey_index: int
    token_type: int
    balance: int
    nonce: int = 0
    burn: int = 0
    last_burn: int = 0  # year * 100 + month

    def __post_init__(self):
        if self.balance < 0:
            raise ValueError(f"Balance cannot be negative: {self.balance}")
        if self.burn < 0:
            raise ValueError(f"Burn cannot be negative: {self.burn}")
        for name in ('pubkey_index', 'token_type', 'nonce', 'last_burn'):
            value = getattr(self, name)
            if not 0 <= value <= UINT32_MAX:
                raise ValueError(f"{name} out of uint32 range: {value}")

    def serialize(self) -> bytes:
        """Fixed-layout big-endian bytes; amounts go through the leaf codec."""
        out = bytearray()
        for name, width in STATE_LAYOUT:
            value = getattr(self, name)
            if name in AMOUNT_FIELDS:
                out += STATE_AMOUNT.encode(value)
            else:
                out += value.to_bytes(width, 'big')
        return bytes(out)

    @classmethod
    def deserialize(cls, data: bytes) -> 'AccountState':
        if len(data) != STATE_LENGTH:
            raise StateDecodeError(f"Expected {STATE_LENGTH} bytes of account state, got {len(data)}")
        fields = {}
        offset = 0
        for name, width in STATE_LAYOUT:
            chunk = data[offset:offset + width]
            if name in AMOUNT_FIELDS:
                fields[name] = STATE_AMOUNT.decode(chunk)
            else:
                fields[name] = int.from_bytes(chunk, 'big')
            offset += width
        return cls(**fields)

    def leaf_hash(self) -> bytes:
        """The value stored in the state tree for this account."""
        return generate_hash(self.serialize())

    def with_changes(self, **changes) -> 'AccountState':
        return replace(self, **changes)

    def to_dict(self) -> dict:
        # Amounts as decimal strings, msgpack integers stop at 64 bits
        return {
            'pubkey_index': self.pubkey_index,
            'token_type': self.token_type,
            'balance': str(self.balance),
            'nonce': self.nonce,
            'burn': str(self.burn),
            'last_burn': self.last_burn,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'AccountState':
        return cls(
            pubkey_index=data['pubkey_index'],
            token_type=data['token_type'],
            balance=int(data['balance']),
            nonce=data.get('nonce', 0),
            burn=int(data.get('burn', 0)),
            last_burn=data.get('last_burn', 0),
        )


def withdrawal_leaf(pubkey_index: int, token_type: int, amount: int) -> AccountState:
    """The leaf representing funds leaving the tree in a mass migration."""
    return AccountState(pubkey_index=pubkey_index, token_type=token_type, balance=amount)
