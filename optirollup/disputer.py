"""
Fraud-proof disputer.

Replays a disputed batch transaction by transaction against Merkle witnesses,
threading the state root through each transition, and halts at the first
invalid transaction. That transaction is the proof that the submitted
post-state root is wrong.

Witness problems (a proof that does not match the root, a transaction root
that does not match the commitment) mean the dispute itself is malformed and
raise; they are never reported as fraud.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Optional

from .core import Result, Tx, BurnExecution, has_receiver, is_signed, tx_root
from .crypto import generate_hash
from .errors import EncodingError, MalformedDisputeError, ProofVerificationError
from .merkle import MerkleProof, ZERO_LEAF, compute_new_root, merkle_root, verify
from .state import AccountState
from .transitions import TransitionContext, apply_sender_side, credit_receiver, indices_in_range

logger = logging.getLogger(__name__)

EMPTY_ROOT = b'\x00' * 32


@dataclass(frozen=True)
class StateWitness:
    """An account (or an empty slot when ``state`` is None) with its sibling path."""
    state: Optional[AccountState]
    index: int
    path: tuple[bytes, ...] = ()

    @property
    def leaf(self) -> bytes:
        return self.state.leaf_hash() if self.state is not None else ZERO_LEAF

    @property
    def proof(self) -> MerkleProof:
        return MerkleProof(leaf=self.leaf, index=self.index, path=self.path)

    def to_dict(self) -> dict:
        return {
            'state': self.state.to_dict() if self.state is not None else None,
            'index': self.index,
            'path': [node.hex() for node in self.path],
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'StateWitness':
        return cls(
            state=AccountState.from_dict(data['state']) if data.get('state') is not None else None,
            index=data['index'],
            path=tuple(bytes.fromhex(node) for node in data['path']),
        )


@dataclass(frozen=True)
class TxProof:
    """
    Everything needed to replay one transaction.

    ``receiver`` is proven against the root *after* the sender update.
    ``pubkey_path`` proves ``pubkey`` in the registry at the sender's
    ``pubkey_index``.
    """
    sender: StateWitness
    receiver: Optional[StateWitness] = None
    signature: bytes = b''
    pubkey: bytes = b''
    pubkey_path: tuple[bytes, ...] = ()

    def to_dict(self) -> dict:
        return {
            'sender': self.sender.to_dict(),
            'receiver': self.receiver.to_dict() if self.receiver is not None else None,
            'signature': self.signature.hex(),
            'pubkey': self.pubkey.hex(),
            'pubkey_path': [node.hex() for node in self.pubkey_path],
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'TxProof':
        return cls(
            sender=StateWitness.from_dict(data['sender']),
            receiver=StateWitness.from_dict(data['receiver']) if data.get('receiver') is not None else None,
            signature=bytes.fromhex(data.get('signature', '')),
            pubkey=bytes.fromhex(data.get('pubkey', '')),
            pubkey_path=tuple(bytes.fromhex(node) for node in data.get('pubkey_path', [])),
        )


@dataclass(frozen=True)
class TxOutcome:
    root: bytes
    is_valid: bool
    result: Result
    withdrawal: Optional[AccountState] = None


@dataclass(frozen=True)
class DisputeResult:
    post_root: bytes
    tx_root: bytes
    is_batch_valid: bool
    halted_at: Optional[int] = None
    result: Result = Result.Ok
    withdrawals: tuple[AccountState, ...] = field(default_factory=tuple)

    @property
    def fraud_proven(self) -> bool:
        """``is_batch_valid`` is True exactly when the submitted post-state is provably wrong."""
        return self.is_batch_valid

    @property
    def withdraw_root(self) -> bytes:
        return merkle_root([leaf.leaf_hash() for leaf in self.withdrawals])

    def to_dict(self) -> dict:
        return {
            'post_root': self.post_root.hex(),
            'tx_root': self.tx_root.hex(),
            'is_batch_valid': self.is_batch_valid,
            'halted_at': self.halted_at,
            'result': self.result.name,
            'withdraw_root': self.withdraw_root.hex(),
        }


class BatchDisputer:
    def __init__(self, ctx: TransitionContext, state_depth: int,
                 pubkey_depth: Optional[int] = None, monitor=None):
        """
        Args:
            ctx: Signature and token registry capabilities
            state_depth: Depth of the account tree
            pubkey_depth: Depth of the pubkey registry tree (defaults to state_depth)
            monitor: Optional metrics sink (see optirollup.monitoring.Monitor)
        """
        self.ctx = ctx
        self.state_depth = state_depth
        self.pubkey_depth = pubkey_depth or state_depth
        self.monitor = monitor

    def _verify_witness(self, root: bytes, witness: Optional[StateWitness], expected_index: int, role: str):
        if witness is None:
            raise ProofVerificationError(f"Missing {role} witness")
        if witness.index != expected_index:
            raise ProofVerificationError(
                f"{role} witness is for slot {witness.index}, transaction references {expected_index}"
            )
        try:
            leaf = witness.leaf
        except EncodingError as e:
            raise ProofVerificationError(f"{role} witness for slot {expected_index} holds an unencodable account") from e
        proof = MerkleProof(leaf=leaf, index=witness.index, path=witness.path)
        if not verify(root, leaf, proof, self.state_depth):
            raise ProofVerificationError(f"{role} witness for slot {expected_index} does not match root {root.hex()[:16]}")

    def _verify_pubkey(self, accounts_root: bytes, sender: AccountState, proof: TxProof):
        pubkey_proof = MerkleProof(
            leaf=generate_hash(proof.pubkey), index=sender.pubkey_index, path=proof.pubkey_path
        )
        if not verify(accounts_root, pubkey_proof.leaf, pubkey_proof, self.pubkey_depth):
            raise ProofVerificationError(f"Pubkey for account {sender.pubkey_index} is not registered")

    def process_tx(self, root: bytes, tx: Tx, proof: TxProof,
                   accounts_root: Optional[bytes] = None,
                   current_period: Optional[int] = None) -> TxOutcome:
        """
        Apply one transaction to ``root``.

        Returns the new root and ``is_valid``. An invalid transaction leaves
        the root untouched.
        """
        if not indices_in_range(tx, self.state_depth):
            return TxOutcome(root, False, Result.IndexMismatch)

        self._verify_witness(root, proof.sender, tx.from_index, "sender")
        sender = proof.sender.state
        if sender is None:
            return TxOutcome(root, False, Result.IndexMismatch)

        if isinstance(tx, BurnExecution) and current_period is None:
            raise MalformedDisputeError("Batch contains a burn execution but no current period was supplied")
        if accounts_root is not None and is_signed(tx):
            self._verify_pubkey(accounts_root, sender, proof)

        first = apply_sender_side(tx, sender, self.ctx, proof.signature, proof.pubkey, current_period)
        if not first.ok:
            return TxOutcome(root, False, first.result)
        intermediate = compute_new_root(proof.sender.proof, first.sender.leaf_hash())

        if not has_receiver(tx):
            # Mass migrations carry their withdrawal leaf in the receiver slot
            return TxOutcome(intermediate, True, Result.Ok, first.receiver)

        self._verify_witness(intermediate, proof.receiver, tx.to_index, "receiver")
        new_receiver, result = credit_receiver(tx, sender.token_type, proof.receiver.state)
        if result is not Result.Ok:
            return TxOutcome(root, False, result)
        return TxOutcome(compute_new_root(proof.receiver.proof, new_receiver.leaf_hash()), True, Result.Ok)

    def process_batch(self, pre_root: bytes, accounts_root: Optional[bytes], txs: list[Tx],
                      proofs: list[TxProof], expected_tx_root: Optional[bytes] = None,
                      current_period: Optional[int] = None) -> DisputeResult:
        """
        Replay ``txs`` from ``pre_root``, stopping at the first invalid one.

        ``post_root`` is the root just before the invalid transaction (or after
        the whole batch). ``is_batch_valid`` is True when that invalid
        transaction was found, i.e. the submitted post-state is wrong.
        """
        start = time.time()
        if len(proofs) != len(txs):
            raise MalformedDisputeError(f"Got {len(proofs)} proofs for {len(txs)} transactions")

        actual_tx_root = tx_root(txs)
        if expected_tx_root is not None and expected_tx_root != EMPTY_ROOT and expected_tx_root != actual_tx_root:
            raise MalformedDisputeError(
                f"Transaction root mismatch: expected {expected_tx_root.hex()}, got {actual_tx_root.hex()}"
            )

        root = pre_root
        withdrawals = []
        halted_at = None
        result = Result.Ok
        for i, (tx, proof) in enumerate(zip(txs, proofs)):
            tx_start = time.time()
            outcome = self.process_tx(root, tx, proof, accounts_root, current_period)
            if self.monitor:
                self.monitor.record_tx(outcome.result.name, time.time() - tx_start)
            if not outcome.is_valid:
                halted_at = i
                result = outcome.result
                logger.warning(f"Transaction {i} of batch is invalid ({result.name}); fraud proven")
                break
            root = outcome.root
            if outcome.withdrawal is not None:
                withdrawals.append(outcome.withdrawal)
            logger.debug(f"Transaction {i} applied, root {root.hex()[:16]}")

        dispute = DisputeResult(
            post_root=root,
            tx_root=actual_tx_root,
            is_batch_valid=halted_at is not None,
            halted_at=halted_at,
            result=result,
            withdrawals=tuple(withdrawals),
        )
        if self.monitor:
            self.monitor.record_batch('fraud' if dispute.fraud_proven else 'valid', time.time() - start)
        logger.info(
            f"Dispute over {len(txs)} transactions finished: fraud_proven={dispute.fraud_proven}, "
            f"post_root={root.hex()[:16]}"
        )
        return dispute
