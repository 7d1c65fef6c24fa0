"""
State transition rules, one validate-and-apply routine per transaction variant.

Every routine is pure: it takes account states and injected capabilities and
returns new states plus a ``Result``. A failing transition returns its inputs
unchanged; it never raises.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from .codec import FLOAT16, STATE_AMOUNT
from .core import (
    Result, Tx, Transfer, MassMigration, Create2Transfer, BurnExecution, has_receiver, state_indices,
)
from .crypto import SignatureVerifier
from .errors import EncodingError
from .state import AccountState, withdrawal_leaf

logger = logging.getLogger(__name__)

DEFAULT_DOMAIN = b'\x00' * 32


@dataclass(frozen=True)
class TransitionContext:
    """External capabilities a transition may consult."""
    verifier: SignatureVerifier
    token_exists: Callable[[int], bool]
    domain: bytes = DEFAULT_DOMAIN


@dataclass(frozen=True)
class Transition:
    sender: AccountState
    receiver: Optional[AccountState]
    result: Result

    @property
    def ok(self) -> bool:
        return self.result is Result.Ok


def registered_tokens(token_types) -> Callable[[int], bool]:
    """Token registry capability over a fixed set of token types."""
    known = frozenset(token_types)
    return lambda token_type: token_type in known


def indices_in_range(tx: Tx, depth: int) -> bool:
    """False when the transaction names a slot past the end of a tree of ``depth``."""
    return all(0 <= index < (1 << depth) for index in state_indices(tx))


def _storable(value: int) -> bool:
    try:
        STATE_AMOUNT.encode(value)
        return True
    except EncodingError:
        return False


def check_signature(tx: Tx, sender: AccountState, ctx: TransitionContext,
                    signature: bytes, pubkey: bytes) -> bool:
    """Rebuild the signed message with the sender's current nonce and verify it."""
    message = tx.message(sender.nonce)
    point = ctx.verifier.hash_to_point(ctx.domain, message)
    return ctx.verifier.verify_single(signature, pubkey, point)


def process_sender(tx: Tx, sender: AccountState, ctx: TransitionContext,
                   signature: bytes, pubkey: bytes) -> tuple[AccountState, Result]:
    """
    Sender side shared by every signed variant: debit ``amount + fee`` and
    bump the nonce.
    """
    if not (FLOAT16.is_canonical(tx.amount) and FLOAT16.is_canonical(tx.fee)):
        return sender, Result.AmountNotEncodable
    if not ctx.token_exists(sender.token_type):
        return sender, Result.InvalidTokenType
    if not check_signature(tx, sender, ctx, signature, pubkey):
        return sender, Result.BadSignature

    total = FLOAT16.decode(tx.amount) + FLOAT16.decode(tx.fee)
    if sender.balance < total:
        return sender, Result.NotEnoughBalance
    new_balance = sender.balance - total
    if not _storable(new_balance):
        return sender, Result.AmountNotEncodable

    return sender.with_changes(balance=new_balance, nonce=sender.nonce + 1), Result.Ok


def process_receiver(tx: Transfer, token_type: int,
                     receiver: AccountState) -> tuple[AccountState, Result]:
    """Credit an existing receiver with ``amount``."""
    if receiver.token_type != token_type:
        return receiver, Result.BadFromTokenType
    new_balance = receiver.balance + FLOAT16.decode(tx.amount)
    if not _storable(new_balance):
        return receiver, Result.AmountNotEncodable
    return receiver.with_changes(balance=new_balance), Result.Ok


def create_receiver(tx: Create2Transfer, token_type: int,
                    slot: Optional[AccountState]) -> tuple[Optional[AccountState], Result]:
    """Materialize a fresh account in an empty slot."""
    if slot is not None:
        return slot, Result.IndexMismatch
    receiver = AccountState(
        pubkey_index=tx.to_account_id,
        token_type=token_type,
        balance=FLOAT16.decode(tx.amount),
        nonce=0,
    )
    return receiver, Result.Ok


def credit_receiver(tx: Tx, token_type: int,
                    slot: Optional[AccountState]) -> tuple[Optional[AccountState], Result]:
    """
    Receiver side of a Transfer or Create2Transfer.

    A Transfer needs an existing account in ``slot``; a Create2Transfer needs
    the slot to be empty.
    """
    if isinstance(tx, Transfer):
        if slot is None:
            return None, Result.IndexMismatch
        return process_receiver(tx, token_type, slot)
    if isinstance(tx, Create2Transfer):
        return create_receiver(tx, token_type, slot)
    raise TypeError(f"{type(tx).__name__} has no receiver")


def apply_sender_side(tx: Tx, sender: AccountState, ctx: TransitionContext,
                      signature: bytes = b'', pubkey: bytes = b'',
                      current_period: Optional[int] = None) -> Transition:
    """
    Everything a transaction does to its sender's leaf.

    Mass migrations and burns are complete after this step; for a mass
    migration ``receiver`` holds the withdrawal leaf. Transfers and
    Create2Transfers still need ``credit_receiver``.
    """
    if isinstance(tx, MassMigration):
        return apply_mass_migration(tx, sender, ctx, signature, pubkey)
    if isinstance(tx, BurnExecution):
        if current_period is None:
            raise ValueError("BurnExecution requires the current period")
        return apply_burn_execution(tx, sender, current_period, ctx)
    if isinstance(tx, (Transfer, Create2Transfer)):
        new_sender, result = process_sender(tx, sender, ctx, signature, pubkey)
        return Transition(new_sender, None, result)
    raise TypeError(f"Unknown transaction type: {type(tx).__name__}")


def apply_transfer(tx: Transfer, sender: AccountState, receiver: Optional[AccountState],
                   ctx: TransitionContext, signature: bytes, pubkey: bytes) -> Transition:
    first = apply_sender_side(tx, sender, ctx, signature, pubkey)
    if not first.ok:
        return Transition(sender, receiver, first.result)
    new_receiver, result = credit_receiver(tx, sender.token_type, receiver)
    if result is not Result.Ok:
        return Transition(sender, receiver, result)
    return Transition(first.sender, new_receiver, Result.Ok)


def apply_mass_migration(tx: MassMigration, sender: AccountState,
                         ctx: TransitionContext, signature: bytes, pubkey: bytes) -> Transition:
    """The receiver slot of the result carries the withdrawal leaf bound for ``tx.spoke_id``."""
    new_sender, result = process_sender(tx, sender, ctx, signature, pubkey)
    if result is not Result.Ok:
        return Transition(sender, None, result)
    withdrawal = withdrawal_leaf(sender.pubkey_index, sender.token_type, FLOAT16.decode(tx.amount))
    return Transition(new_sender, withdrawal, Result.Ok)


def apply_create2transfer(tx: Create2Transfer, sender: AccountState, slot: Optional[AccountState],
                          ctx: TransitionContext, signature: bytes, pubkey: bytes) -> Transition:
    first = apply_sender_side(tx, sender, ctx, signature, pubkey)
    if not first.ok:
        return Transition(sender, slot, first.result)
    receiver, result = credit_receiver(tx, sender.token_type, slot)
    if result is not Result.Ok:
        return Transition(sender, slot, result)
    return Transition(first.sender, receiver, Result.Ok)


def apply_burn_execution(tx: BurnExecution, account: AccountState, current_period: int,
                         ctx: Optional[TransitionContext] = None) -> Transition:
    """
    Debit the account's periodic ``burn``, at most once per period.

    ``current_period`` is ``year * 100 + month`` supplied by the caller; the
    engine never reads the clock. When ``ctx`` is given its token registry
    must know the account's token type.
    """
    if ctx is not None and not ctx.token_exists(account.token_type):
        return Transition(account, None, Result.InvalidTokenType)
    if account.last_burn == current_period:
        return Transition(account, None, Result.AlreadyBurnedThisPeriod)
    if account.balance < account.burn:
        return Transition(account, None, Result.NotEnoughBalance)
    burned = account.with_changes(balance=account.balance - account.burn, last_burn=current_period)
    return Transition(burned, None, Result.Ok)


def apply(tx: Tx, sender: AccountState, receiver: Optional[AccountState], ctx: TransitionContext,
          signature: bytes = b'', pubkey: bytes = b'', current_period: Optional[int] = None) -> Transition:
    """Sender side, then receiver side for the variants that have one."""
    first = apply_sender_side(tx, sender, ctx, signature, pubkey, current_period)
    if first.ok and has_receiver(tx):
        new_receiver, result = credit_receiver(tx, sender.token_type, receiver)
        if result is Result.Ok:
            transition = Transition(first.sender, new_receiver, Result.Ok)
        else:
            transition = Transition(sender, receiver, result)
    else:
        transition = first

    if not transition.ok:
        logger.debug(f"{type(tx).__name__} from {tx.from_index} rejected: {transition.result.name}")
    return transition
