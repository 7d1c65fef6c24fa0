import msgpack
import pytest

from optirollup.bundle import DisputeBundle
from optirollup.core import BurnExecution, Transfer
from optirollup.disputer import StateWitness, TxProof
from optirollup.errors import MalformedDisputeError
from optirollup.state import AccountState


@pytest.fixture
def bundle():
    sender = StateWitness(AccountState(pubkey_index=0, token_type=1, balance=100), 0, (b'\x01' * 32, b'\x02' * 32))
    receiver = StateWitness(None, 1, (b'\x03' * 32, b'\x04' * 32))
    return DisputeBundle(
        pre_root=b'\xaa' * 32,
        txs=[Transfer.build(0, 1, 30, 1), BurnExecution.build(0)],
        proofs=[
            TxProof(sender=sender, receiver=receiver, signature=b'\x05' * 64, pubkey=b'\x06' * 32,
                    pubkey_path=(b'\x07' * 32,)),
            TxProof(sender=sender),
        ],
        accounts_root=b'\xbb' * 32,
        expected_tx_root=b'\xcc' * 32,
        current_period=202410,
        meta={'claimed_post_root': 'ff' * 32},
    )


def test_pack_and_unpack(bundle):
    restored = DisputeBundle.unpack(bundle.pack())
    assert restored == bundle
    assert restored.proofs[0].receiver.state is None


def test_save_and_load(bundle, tmp_path):
    path = str(tmp_path / "dispute.msgpack")
    bundle.save(path)
    assert DisputeBundle.load(path) == bundle


def test_unsupported_version(bundle):
    data = bundle.to_dict()
    data['version'] = 99
    with pytest.raises(MalformedDisputeError):
        DisputeBundle.unpack(msgpack.packb(data, use_bin_type=True))


def test_truncated_transaction(bundle):
    data = bundle.to_dict()
    data['txs'][0][1] = data['txs'][0][1][:-1]
    with pytest.raises(MalformedDisputeError):
        DisputeBundle.from_dict(data)


def test_missing_field(bundle):
    data = bundle.to_dict()
    del data['proofs']
    with pytest.raises(MalformedDisputeError):
        DisputeBundle.from_dict(data)


def test_not_a_map():
    with pytest.raises(MalformedDisputeError):
        DisputeBundle.unpack(msgpack.packb([1, 2, 3]))
