"""
msgpack container for everything a disputer needs: the committed roots, the
compressed batch and one witness set per transaction.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional

import msgpack

from .core import Tx, decompress
from .disputer import TxProof
from .errors import EncodingError, MalformedDisputeError

logger = logging.getLogger(__name__)

BUNDLE_VERSION = 1


@dataclass
class DisputeBundle:
    pre_root: bytes
    txs: list[Tx]
    proofs: list[TxProof]
    accounts_root: Optional[bytes] = None
    expected_tx_root: Optional[bytes] = None
    current_period: Optional[int] = None
    meta: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            'version': BUNDLE_VERSION,
            'pre_root': self.pre_root,
            'accounts_root': self.accounts_root,
            'expected_tx_root': self.expected_tx_root,
            'current_period': self.current_period,
            'txs': [[int(tx.TX_TYPE), tx.compress()] for tx in self.txs],
            'proofs': [proof.to_dict() for proof in self.proofs],
            'meta': self.meta,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'DisputeBundle':
        if data.get('version') != BUNDLE_VERSION:
            raise MalformedDisputeError(f"Unsupported bundle version: {data.get('version')}")
        try:
            return cls(
                pre_root=data['pre_root'],
                txs=[decompress(tx_type, raw) for tx_type, raw in data['txs']],
                proofs=[TxProof.from_dict(proof) for proof in data['proofs']],
                accounts_root=data.get('accounts_root'),
                expected_tx_root=data.get('expected_tx_root'),
                current_period=data.get('current_period'),
                meta=data.get('meta') or {},
            )
        except (KeyError, ValueError, TypeError, EncodingError) as e:
            raise MalformedDisputeError(f"Malformed dispute bundle: {e}") from e

    def pack(self) -> bytes:
        return msgpack.packb(self.to_dict(), use_bin_type=True)

    @classmethod
    def unpack(cls, data: bytes) -> 'DisputeBundle':
        try:
            decoded = msgpack.unpackb(data, raw=False)
        except (msgpack.exceptions.UnpackException, ValueError) as e:
            raise MalformedDisputeError(f"Cannot decode dispute bundle: {e}") from e
        if not isinstance(decoded, dict):
            raise MalformedDisputeError("Dispute bundle must be a map")
        return cls.from_dict(decoded)

    def save(self, path: str):
        with open(path, 'wb') as f:
            f.write(self.pack())
        logger.info(f"Wrote dispute bundle with {len(self.txs)} transactions to {path}")

    @classmethod
    def load(cls, path: str) -> 'DisputeBundle':
        with open(path, 'rb') as f:
            return cls.unpack(f.read())
