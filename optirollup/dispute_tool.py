"""
Dispute Tool

Replays a dispute bundle and prints the verdict, so a batch can be checked
independently of whoever produced it. Also writes sample configuration and a
sample bundle for trying the tool out.
"""
import argparse
import json
import logging
import sys

from optirollup.bundle import DisputeBundle
from optirollup.config import Config
from optirollup.core import Transfer
from optirollup.crypto import Ed25519Verifier, generate_key_pair, sign
from optirollup.disputer import BatchDisputer
from optirollup.errors import ConfigError, ValidationError
from optirollup.executor import OptimisticExecutor
from optirollup.monitoring import Monitor
from optirollup.state import AccountState
from optirollup.transitions import TransitionContext, registered_tokens
from optirollup.tree import PubkeyRegistry, StateTree

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def build_context(config: Config) -> TransitionContext:
    return TransitionContext(
        verifier=Ed25519Verifier(),
        token_exists=registered_tokens(config.tokens.registered_tokens),
        domain=config.signature.domain_bytes,
    )


def run_dispute(bundle_path: str, config: Config) -> dict:
    """
    Replays the bundle at ``bundle_path``.

    Returns the verdict as a dict; raises ValidationError for a malformed dispute.
    """
    bundle = DisputeBundle.load(bundle_path)
    monitor = None
    if config.monitoring.enabled:
        monitor = Monitor(config.monitoring.host, config.monitoring.port)
        monitor.start_server()

    disputer = BatchDisputer(
        build_context(config),
        state_depth=config.tree.state_depth,
        pubkey_depth=config.tree.pubkey_depth,
        monitor=monitor,
    )
    try:
        result = disputer.process_batch(
            bundle.pre_root,
            bundle.accounts_root,
            bundle.txs,
            bundle.proofs,
            bundle.expected_tx_root,
            bundle.current_period,
        )
    finally:
        if monitor:
            monitor.stop_server()
    return result.to_dict()


def generate_sample_config(output_path: str, state_depth: int = 32):
    """Generates a sample configuration file."""
    config = Config.default()
    config.tree.state_depth = state_depth
    config.tree.pubkey_depth = state_depth
    config.to_file(output_path)
    print(f"Generated sample configuration at: {output_path}")


def generate_sample_bundle(output_path: str, config: Config):
    """
    Builds a two-account tree, executes one signed transfer and writes the
    resulting dispute bundle.
    """
    ctx = build_context(config)
    token = config.tokens.registered_tokens[0]
    tree = StateTree(config.tree.state_depth)
    registry = PubkeyRegistry(config.tree.pubkey_depth)

    alice_key, alice_pub = generate_key_pair()
    _, bob_pub = generate_key_pair()
    tree.set(0, AccountState(pubkey_index=registry.register(alice_pub), token_type=token, balance=100))
    tree.set(1, AccountState(pubkey_index=registry.register(bob_pub), token_type=token, balance=0))
    pre_root = tree.root_hash

    tx = Transfer.build(from_index=0, to_index=1, amount=30, fee=1, nonce=0)
    signature = sign(alice_key, ctx.domain, tx.message(tx.nonce))
    execution = OptimisticExecutor(tree, ctx, registry).execute([tx], [signature])

    bundle = DisputeBundle(
        pre_root=pre_root,
        txs=[tx],
        proofs=execution.proofs,
        accounts_root=registry.root_hash,
        expected_tx_root=execution.tx_root,
        meta={'claimed_post_root': execution.root.hex()},
    )
    bundle.save(output_path)
    print(f"Generated sample bundle at: {output_path}")
    print(f"  - Pre-state root:  {pre_root.hex()}")
    print(f"  - Post-state root: {execution.root.hex()}")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Rollup Dispute Tool")
    parser.add_argument("--config", type=str, default=None, help="Path to a JSON config file")
    subparsers = parser.add_subparsers(dest="command", required=True)

    parser_dispute = subparsers.add_parser("dispute", help="Replay a dispute bundle and print the verdict")
    parser_dispute.add_argument("--bundle", type=str, required=True, help="Path to a msgpack dispute bundle")

    parser_sample = subparsers.add_parser("sample-config", help="Generate a sample config file")
    parser_sample.add_argument("--output", type=str, default="rollup.json", help="Output file path")
    parser_sample.add_argument("--depth", type=int, default=32, help="State tree depth")

    parser_bundle = subparsers.add_parser("sample-bundle", help="Generate a sample dispute bundle")
    parser_bundle.add_argument("--output", type=str, default="dispute.msgpack", help="Output file path")

    args = parser.parse_args(argv)

    try:
        config = Config.from_file(args.config) if args.config else Config.default()
    except ConfigError as e:
        logger.error(str(e))
        return 1

    if args.command == "sample-config":
        generate_sample_config(args.output, args.depth)
    elif args.command == "sample-bundle":
        generate_sample_bundle(args.output, config)
    elif args.command == "dispute":
        try:
            verdict = run_dispute(args.bundle, config)
        except ValidationError as e:
            logger.error(f"Dispute rejected: {e}")
            return 2
        except OSError as e:
            logger.error(f"Cannot read bundle: {e}")
            return 1
        print(json.dumps(verdict, indent=2))
    return 0


if __name__ == '__main__':
    sys.exit(main())
