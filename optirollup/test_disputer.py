"""
Fraud-proof disputes: batch replay against Merkle witnesses.

Witnesses are produced by the optimistic executor, then replayed by the
disputer from the pre-state root.
"""
from dataclasses import replace

import pytest

from optirollup.core import BurnExecution, Create2Transfer, MassMigration, Result, Transfer
from optirollup.crypto import Ed25519Verifier, generate_key_pair, sign
from optirollup.disputer import BatchDisputer, StateWitness, TxProof
from optirollup.errors import MalformedDisputeError, ProofVerificationError
from optirollup.executor import OptimisticExecutor
from optirollup.merkle import merkle_root
from optirollup.monitoring import Monitor
from optirollup.state import AccountState
from optirollup.transitions import TransitionContext, registered_tokens
from optirollup.tree import PubkeyRegistry, StateTree

DEPTH = 4
TOKEN = 1
DOMAIN = b'\x33' * 32


@pytest.fixture
def ctx():
    return TransitionContext(verifier=Ed25519Verifier(), token_exists=registered_tokens([1, 2]), domain=DOMAIN)


@pytest.fixture
def world():
    """
    Slots 0..3: A=100, B=0, C=5 (token 1) and D=0 (token 2).
    Each account's pubkey is registered at the same index as its slot.
    """
    tree = StateTree(DEPTH)
    registry = PubkeyRegistry(DEPTH)
    keys = []
    for slot, (balance, token) in enumerate([(100, TOKEN), (0, TOKEN), (5, TOKEN), (0, 2)]):
        key, pubkey = generate_key_pair()
        keys.append(key)
        pubkey_index = registry.register(pubkey)
        tree.set(slot, AccountState(pubkey_index=pubkey_index, token_type=token, balance=balance))
    return {'tree': tree, 'registry': registry, 'keys': keys, 'pre_root': tree.root_hash}


@pytest.fixture
def disputer(ctx):
    return BatchDisputer(ctx, state_depth=DEPTH, pubkey_depth=DEPTH)


def signed(world, slot, tx, nonce):
    return sign(world['keys'][slot], DOMAIN, tx.message(nonce))


def execute(world, ctx, txs, signatures, current_period=None):
    executor = OptimisticExecutor(world['tree'], ctx, world['registry'])
    return executor.execute(txs, signatures, current_period)


def three_tx_batch(world):
    """Two valid transfers followed by an overdraft from C."""
    tx0 = Transfer.build(0, 1, 30, 1)
    tx1 = Transfer.build(1, 0, 10, 0)
    tx2 = Transfer.build(2, 0, 50, 1)
    signatures = [signed(world, 0, tx0, 0), signed(world, 1, tx1, 0), signed(world, 2, tx2, 0)]
    return [tx0, tx1, tx2], signatures


def test_halts_at_first_failure(world, ctx, disputer):
    txs, signatures = three_tx_batch(world)
    execution = execute(world, ctx, txs, signatures)
    assert execution.results == [Result.Ok, Result.Ok, Result.NotEnoughBalance]

    result = disputer.process_batch(
        world['pre_root'], world['registry'].root_hash, txs, execution.proofs, execution.tx_root
    )

    assert result.is_batch_valid is True
    assert result.fraud_proven
    assert result.halted_at == 2
    assert result.result is Result.NotEnoughBalance
    assert result.tx_root == execution.tx_root

    # Root after applying only transactions 0 and 1
    expected = StateTree(DEPTH)
    expected.set(0, AccountState(pubkey_index=0, token_type=TOKEN, balance=79, nonce=1))
    expected.set(1, AccountState(pubkey_index=1, token_type=TOKEN, balance=20, nonce=1))
    expected.set(2, AccountState(pubkey_index=2, token_type=TOKEN, balance=5))
    expected.set(3, AccountState(pubkey_index=3, token_type=2, balance=0))
    assert result.post_root == expected.root_hash


def test_valid_batch(world, ctx, disputer):
    txs, signatures = three_tx_batch(world)
    execution = execute(world, ctx, txs[:2], signatures[:2])

    result = disputer.process_batch(
        world['pre_root'], world['registry'].root_hash, txs[:2], execution.proofs, execution.tx_root
    )

    assert result.is_batch_valid is False
    assert result.halted_at is None
    assert result.result is Result.Ok
    assert result.post_root == execution.root


def test_end_to_end_transfer(world, ctx, disputer):
    tx = Transfer.build(0, 1, 30, 1)
    execution = execute(world, ctx, [tx], [signed(world, 0, tx, 0)])
    assert world['tree'].get(0).balance == 69
    assert world['tree'].get(1).balance == 30
    assert world['tree'].get(0).nonce == 1

    result = disputer.process_batch(world['pre_root'], None, [tx], execution.proofs)
    assert not result.fraud_proven
    assert result.post_root == execution.root


def test_bad_signature_at_first_tx(world, ctx, disputer):
    tx = Transfer.build(0, 1, 30, 1)
    execution = execute(world, ctx, [tx], [signed(world, 1, tx, 0)])

    result = disputer.process_batch(world['pre_root'], world['registry'].root_hash, [tx], execution.proofs)

    assert result.fraud_proven
    assert result.halted_at == 0
    assert result.result is Result.BadSignature
    assert result.post_root == world['pre_root']


def test_receiver_token_mismatch(world, ctx, disputer):
    """The receiver witness is checked against the root after the sender update."""
    tx = Transfer.build(0, 3, 30, 1)
    execution = execute(world, ctx, [tx], [signed(world, 0, tx, 0)])
    assert execution.proofs[0].receiver is not None

    result = disputer.process_batch(world['pre_root'], world['registry'].root_hash, [tx], execution.proofs)
    assert result.result is Result.BadFromTokenType
    assert result.post_root == world['pre_root']


def test_self_transfer(world, ctx, disputer):
    tx = Transfer.build(0, 0, 10, 1)
    execution = execute(world, ctx, [tx], [signed(world, 0, tx, 0)])
    assert world['tree'].get(0).balance == 99

    result = disputer.process_batch(world['pre_root'], world['registry'].root_hash, [tx], execution.proofs)
    assert not result.fraud_proven
    assert result.post_root == execution.root


def test_empty_sender_slot(world, ctx, disputer):
    tx = Transfer.build(7, 0, 10, 1)
    execution = execute(world, ctx, [tx], [b''])
    assert execution.results == [Result.IndexMismatch]

    result = disputer.process_batch(world['pre_root'], None, [tx], execution.proofs)
    assert result.halted_at == 0
    assert result.result is Result.IndexMismatch


def test_transfer_to_empty_slot(world, ctx, disputer):
    tx = Transfer.build(0, 9, 10, 1)
    execution = execute(world, ctx, [tx], [signed(world, 0, tx, 0)])

    result = disputer.process_batch(world['pre_root'], None, [tx], execution.proofs)
    assert result.result is Result.IndexMismatch


def test_create2transfer_and_mass_migration(world, ctx, disputer):
    tx0 = Create2Transfer.build(from_index=0, to_index=5, to_account_id=9, amount=20, fee=1)
    tx1 = MassMigration.build(from_index=0, amount=10, fee=1, spoke_id=2)
    execution = execute(world, ctx, [tx0, tx1], [signed(world, 0, tx0, 0), signed(world, 0, tx1, 1)])
    assert execution.all_valid
    assert world['tree'].get(5) == AccountState(pubkey_index=9, token_type=TOKEN, balance=20)
    assert world['tree'].get(0).balance == 68

    result = disputer.process_batch(
        world['pre_root'], world['registry'].root_hash, [tx0, tx1], execution.proofs, execution.tx_root
    )

    assert not result.fraud_proven
    assert result.post_root == execution.root
    assert result.withdrawals == (AccountState(pubkey_index=0, token_type=TOKEN, balance=10),)
    assert result.withdraw_root == merkle_root([result.withdrawals[0].leaf_hash()])


def test_create2transfer_into_occupied_slot(world, ctx, disputer):
    tx = Create2Transfer.build(0, 1, 9, 20, 1)
    execution = execute(world, ctx, [tx], [signed(world, 0, tx, 0)])

    result = disputer.process_batch(world['pre_root'], None, [tx], execution.proofs)
    assert result.result is Result.IndexMismatch
    assert result.halted_at == 0


def test_burn_twice_in_one_period(ctx, disputer):
    tree = StateTree(DEPTH)
    tree.set(0, AccountState(pubkey_index=0, token_type=TOKEN, balance=100, burn=10, last_burn=202409))
    pre_root = tree.root_hash
    txs = [BurnExecution.build(0), BurnExecution.build(0)]
    execution = OptimisticExecutor(tree, ctx).execute(txs, current_period=202410)
    assert execution.results == [Result.Ok, Result.AlreadyBurnedThisPeriod]

    result = disputer.process_batch(pre_root, None, txs, execution.proofs, current_period=202410)
    assert result.halted_at == 1
    assert result.result is Result.AlreadyBurnedThisPeriod
    assert result.post_root == execution.root

    with pytest.raises(MalformedDisputeError):
        disputer.process_batch(pre_root, None, txs, execution.proofs)


def test_tx_root_mismatch_is_malformed(world, ctx, disputer):
    txs, signatures = three_tx_batch(world)
    execution = execute(world, ctx, txs, signatures)

    with pytest.raises(MalformedDisputeError):
        disputer.process_batch(world['pre_root'], None, txs, execution.proofs, b'\x01' * 32)

    # A zero commitment means "not supplied"
    result = disputer.process_batch(world['pre_root'], None, txs, execution.proofs, b'\x00' * 32)
    assert result.halted_at == 2


def test_proof_count_mismatch(world, ctx, disputer):
    txs, signatures = three_tx_batch(world)
    execution = execute(world, ctx, txs, signatures)
    with pytest.raises(MalformedDisputeError):
        disputer.process_batch(world['pre_root'], None, txs, execution.proofs[:2])


def test_tampered_sibling_is_rejected(world, ctx, disputer):
    txs, signatures = three_tx_batch(world)
    execution = execute(world, ctx, txs, signatures)
    proofs = list(execution.proofs)
    witness = proofs[1].sender
    path = list(witness.path)
    path[2] = bytes([path[2][0] ^ 0x80]) + path[2][1:]
    proofs[1] = replace(proofs[1], sender=StateWitness(witness.state, witness.index, tuple(path)))

    with pytest.raises(ProofVerificationError):
        disputer.process_batch(world['pre_root'], None, txs, proofs)


def test_forged_account_state_is_rejected(world, ctx, disputer):
    """Inflating the sender balance in the witness cannot turn an overdraft into a valid tx."""
    txs, signatures = three_tx_batch(world)
    execution = execute(world, ctx, txs, signatures)
    proofs = list(execution.proofs)
    witness = proofs[2].sender
    forged = StateWitness(witness.state.with_changes(balance=1000), witness.index, witness.path)
    proofs[2] = replace(proofs[2], sender=forged)

    with pytest.raises(ProofVerificationError):
        disputer.process_batch(world['pre_root'], None, txs, proofs)


def test_witness_for_wrong_slot(world, ctx, disputer):
    txs, signatures = three_tx_batch(world)
    execution = execute(world, ctx, txs, signatures)
    proofs = list(execution.proofs)
    proofs[0] = replace(proofs[0], sender=proofs[1].sender)

    with pytest.raises(ProofVerificationError):
        disputer.process_batch(world['pre_root'], None, txs, proofs)


def test_unregistered_pubkey_is_rejected(world, ctx, disputer):
    txs, signatures = three_tx_batch(world)
    execution = execute(world, ctx, txs, signatures)
    _, stranger = generate_key_pair()
    proofs = list(execution.proofs)
    proofs[0] = replace(proofs[0], pubkey=stranger)

    with pytest.raises(ProofVerificationError):
        disputer.process_batch(world['pre_root'], world['registry'].root_hash, txs, proofs)


def test_monitor_records_outcomes(world, ctx):
    monitor = Monitor()
    disputer = BatchDisputer(ctx, state_depth=DEPTH, monitor=monitor)
    txs, signatures = three_tx_batch(world)
    execution = execute(world, ctx, txs, signatures)

    disputer.process_batch(world['pre_root'], world['registry'].root_hash, txs, execution.proofs)

    registry = monitor.registry
    assert registry.get_sample_value('rollup_transactions_total', {'result': 'Ok'}) == 2.0
    assert registry.get_sample_value('rollup_transactions_total', {'result': 'NotEnoughBalance'}) == 1.0
    assert registry.get_sample_value('rollup_batches_total', {'verdict': 'fraud'}) == 1.0


def test_receiver_outside_tree_is_fraud(world, ctx, disputer):
    """A slot past the end of the tree has no witness; the transaction is still provably invalid."""
    tx0 = Transfer.build(0, 1, 30, 1)
    tx1 = Transfer.build(0, 20, 10, 1)
    execution = execute(world, ctx, [tx0, tx1], [signed(world, 0, tx0, 0), signed(world, 0, tx1, 1)])
    assert execution.results == [Result.Ok, Result.IndexMismatch]

    result = disputer.process_batch(
        world['pre_root'], world['registry'].root_hash, [tx0, tx1], execution.proofs, execution.tx_root
    )
    assert result.fraud_proven
    assert result.halted_at == 1
    assert result.result is Result.IndexMismatch
    assert result.post_root == execution.root


def test_sender_outside_tree_is_fraud(world, disputer):
    tx = Transfer.build(16, 0, 10, 1)
    proof = TxProof(sender=StateWitness(None, 16))
    result = disputer.process_batch(world['pre_root'], None, [tx], [proof])
    assert result.halted_at == 0
    assert result.result is Result.IndexMismatch


def test_unencodable_witness_is_rejected(world, disputer):
    """A witness balance the leaf codec cannot store is a bad proof, not an encoding crash."""
    oversized = AccountState(pubkey_index=0, token_type=TOKEN, balance=2 ** 121 + 1)
    proof = TxProof(sender=StateWitness(oversized, 0, world['tree'].proof(0).path))

    with pytest.raises(ProofVerificationError):
        disputer.process_batch(world['pre_root'], None, [BurnExecution.build(0)], [proof], current_period=202410)
