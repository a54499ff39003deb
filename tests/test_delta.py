"""Unit tests for delta computation and replay."""

import pytest
from common.types import CopyInstruction, InsertInstruction
from sync.delta import apply_delta, compute_delta, index_by_strong_hash, replay_plan, split_blocks
from sync.exceptions import DeltaApplyError, SourceChangedError
from sync.signature import build_signature

from conftest import make_blocks


def _delta(old: bytes, new: bytes, block_size: int = 4096):
    return compute_delta(build_signature(new, block_size), build_signature(old, block_size), new)


def test_changed_tail_block():
    """Only the last block of a 10000-byte file differs."""
    old = bytes(i % 251 for i in range(10000))
    new = old[:8192] + b'\x00' * 1808

    plan = _delta(old, new)

    copies = [i for i in plan.instructions if isinstance(i, CopyInstruction)]
    inserts = [i for i in plan.instructions if isinstance(i, InsertInstruction)]
    assert len(copies) == 2
    assert len(inserts) == 1
    assert len(plan.novel_blocks) == 1
    assert plan.novel_blocks[0] == b'\x00' * 1808
    assert plan.stats.savings_percent == pytest.approx(66.7, abs=0.05)
    assert plan.stats.delta_size == 1808
    assert plan.stats.original_size == 10000


def test_identical_file_reuses_everything():
    data = bytes(i % 199 for i in range(20000))

    plan = _delta(data, data)

    assert plan.novel_blocks == ()
    assert plan.stats.savings_percent == 100.0
    assert all(isinstance(i, CopyInstruction) for i in plan.instructions)


def test_rewritten_file_reuses_nothing():
    old = make_blocks(1, 2, 3)
    new = make_blocks(4, 5, 6)

    plan = _delta(old, new)

    assert plan.stats.savings_percent == 0
    assert plan.stats.novel_blocks == 3
    assert [i.block_index for i in plan.instructions] == [0, 1, 2]


def test_instructions_in_ascending_destination_order():
    old = make_blocks(1, 2, 3, 4)
    new = make_blocks(9, 2, 8, 4)

    plan = _delta(old, new)

    assert [i.dest_index for i in plan.instructions] == [0, 1, 2, 3]
    assert isinstance(plan.instructions[0], InsertInstruction)
    assert plan.instructions[1] == CopyInstruction(source_index=1, dest_index=1, length=4096)
    assert plan.instructions[2].block_index == 1


def test_moved_block_copies_from_its_old_position():
    old = make_blocks(1, 2, 3)
    new = make_blocks(3, 1, 2)

    plan = _delta(old, new)

    assert [i.source_index for i in plan.instructions] == [2, 0, 1]
    assert plan.novel_blocks == ()


def test_repeated_remote_content_resolves_to_lowest_index():
    signature = build_signature(make_blocks(7, 7, 7), 4096)

    lookup = index_by_strong_hash(signature)

    assert len(lookup) == 1
    assert next(iter(lookup.values())).index == 0


def test_appending_keeps_old_blocks():
    """Savings equal old block count over new block count."""
    old = make_blocks(1, 2, 3, 4)
    new = old + make_blocks(5, 6, 7, 8)

    plan = _delta(old, new)

    assert plan.stats.savings_percent == pytest.approx(4 / 8 * 100)


def test_empty_file_gives_empty_plan():
    plan = _delta(b'', b'')

    assert plan.is_empty
    assert plan.stats.total_blocks == 0
    assert plan.stats.savings_percent == 100.0


def test_block_size_mismatch_is_rejected():
    data = make_blocks(1, 2)

    with pytest.raises(ValueError):
        compute_delta(build_signature(data, 4096), build_signature(data, 2048), data)


def test_source_changed_after_signature(tmp_path):
    path = tmp_path / 'file.bin'
    path.write_bytes(make_blocks(1, 2))
    local = build_signature(path)
    remote = build_signature(make_blocks(1, 3))

    path.write_bytes(make_blocks(1, 4))

    with pytest.raises(SourceChangedError):
        compute_delta(local, remote, path)


def test_source_resized_after_signature(tmp_path):
    path = tmp_path / 'file.bin'
    path.write_bytes(make_blocks(1, 2))
    local = build_signature(path)

    path.write_bytes(make_blocks(1, 2, 3))

    with pytest.raises(SourceChangedError):
        compute_delta(local, build_signature(make_blocks(1)), path)


@pytest.mark.parametrize("old, new", [
    (b'', bytes(range(200)) * 30),
    (bytes(range(256)) * 40, bytes(range(256)) * 40 + b'tail'),
    (bytes(range(256)) * 40, b'head' + bytes(range(256)) * 40),
    (make_blocks(1, 2, 3) + b'short', make_blocks(3, 3, 1) + b'other'),
])
def test_replaying_plan_reconstructs_new_file(old, new):
    plan = _delta(old, new)

    assert replay_plan(plan, old) == new


def test_apply_delta_accepts_unordered_instructions():
    base = [b'aaaa', b'bbbb']
    instructions = [
        InsertInstruction(block_index=0, dest_index=1, length=2),
        CopyInstruction(source_index=1, dest_index=0, length=4),
    ]

    assert apply_delta(instructions, {0: b'zz'}, base) == b'bbbbzz'


def test_apply_delta_rejects_gap():
    with pytest.raises(DeltaApplyError):
        apply_delta([CopyInstruction(source_index=0, dest_index=1, length=4)], {}, [b'aaaa'])


def test_apply_delta_rejects_missing_novel_block():
    with pytest.raises(DeltaApplyError):
        apply_delta([InsertInstruction(block_index=3, dest_index=0, length=4)], {}, [])


def test_apply_delta_rejects_unknown_source_block():
    with pytest.raises(DeltaApplyError):
        apply_delta([CopyInstruction(source_index=5, dest_index=0, length=4)], {}, [b'aaaa'])


def test_apply_delta_rejects_length_mismatch():
    with pytest.raises(DeltaApplyError):
        apply_delta([CopyInstruction(source_index=0, dest_index=0, length=3)], {}, [b'aaaa'])


def test_split_blocks():
    assert split_blocks(b'abcdefg', 3) == [b'abc', b'def', b'g']
    assert split_blocks(b'', 3) == []
