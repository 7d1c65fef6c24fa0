"""
Optimistic executor: applies a batch directly to a state tree and records,
per transaction, the witnesses a disputer needs to replay it.
"""
import logging
import time
from dataclasses import dataclass, field, replace
from typing import Optional

from .core import Result, Tx, has_receiver, is_signed, tx_root
from .disputer import StateWitness, TxProof
from .state import AccountState
from .transitions import TransitionContext, apply_sender_side, credit_receiver, indices_in_range
from .tree import PubkeyRegistry, StateTree

logger = logging.getLogger(__name__)


@dataclass
class ExecutionResult:
    root: bytes
    tx_root: bytes
    proofs: list[TxProof] = field(default_factory=list)
    results: list[Result] = field(default_factory=list)
    withdrawals: list[AccountState] = field(default_factory=list)

    @property
    def all_valid(self) -> bool:
        return all(result is Result.Ok for result in self.results)

    @property
    def first_invalid(self) -> Optional[int]:
        for i, result in enumerate(self.results):
            if result is not Result.Ok:
                return i
        return None


class OptimisticExecutor:
    def __init__(self, tree: StateTree, ctx: TransitionContext,
                 registry: Optional[PubkeyRegistry] = None, monitor=None):
        self.tree = tree
        self.ctx = ctx
        self.registry = registry
        self.monitor = monitor

    def _witness(self, index: int) -> StateWitness:
        return StateWitness(self.tree.get(index), index, self.tree.proof(index).path)

    def _signer(self, sender: AccountState) -> tuple[bytes, tuple[bytes, ...]]:
        if self.registry is None:
            return b'', ()
        return self.registry.get(sender.pubkey_index), self.registry.proof(sender.pubkey_index).path

    def apply_tx(self, tx: Tx, signature: bytes = b'',
                 current_period: Optional[int] = None) -> tuple[TxProof, Result, Optional[AccountState]]:
        """
        Apply one transaction in place. An invalid transaction leaves the
        tree as it was; its proof is still returned.
        """
        if not indices_in_range(tx, self.tree.depth):
            # No witness exists for a slot outside the tree
            return TxProof(sender=StateWitness(None, tx.from_index), signature=signature), Result.IndexMismatch, None

        sender_witness = self._witness(tx.from_index)
        sender = sender_witness.state
        if sender is None:
            return TxProof(sender=sender_witness, signature=signature), Result.IndexMismatch, None

        pubkey, pubkey_path = self._signer(sender) if is_signed(tx) else (b'', ())
        proof = TxProof(sender=sender_witness, signature=signature, pubkey=pubkey, pubkey_path=pubkey_path)
        first = apply_sender_side(tx, sender, self.ctx, signature, pubkey, current_period)
        if not first.ok:
            return proof, first.result, None
        self.tree.set(tx.from_index, first.sender)

        if not has_receiver(tx):
            return proof, Result.Ok, first.receiver

        receiver_witness = self._witness(tx.to_index)
        proof = replace(proof, receiver=receiver_witness)
        new_receiver, result = credit_receiver(tx, sender.token_type, receiver_witness.state)
        if result is not Result.Ok:
            # Roll back the sender update
            self.tree.set(tx.from_index, sender)
            return proof, result, None
        self.tree.set(tx.to_index, new_receiver)
        return proof, Result.Ok, None

    def execute(self, txs: list[Tx], signatures: Optional[list[bytes]] = None,
                current_period: Optional[int] = None) -> ExecutionResult:
        """Apply a batch, returning the new root and the per-transaction proofs."""
        start = time.time()
        signatures = signatures if signatures is not None else [b''] * len(txs)
        if len(signatures) != len(txs):
            raise ValueError(f"Got {len(signatures)} signatures for {len(txs)} transactions")

        execution = ExecutionResult(root=self.tree.root_hash, tx_root=tx_root(txs))
        for i, (tx, signature) in enumerate(zip(txs, signatures)):
            tx_start = time.time()
            proof, result, withdrawal = self.apply_tx(tx, signature, current_period)
            if self.monitor:
                self.monitor.record_tx(result.name, time.time() - tx_start)
            execution.proofs.append(proof)
            execution.results.append(result)
            if withdrawal is not None:
                execution.withdrawals.append(withdrawal)
            if result is not Result.Ok:
                logger.warning(f"Transaction {i} ({type(tx).__name__}) skipped: {result.name}")

        execution.root = self.tree.root_hash
        if self.monitor:
            self.monitor.record_batch('applied', time.time() - start)
        logger.info(f"Applied batch of {len(txs)} transactions, new root {execution.root.hex()[:16]}")
        return execution
