"""
Verification core for an optimistic rollup: amount codec, Merkle proofs,
account leaves, state transitions and batch disputes.
"""
