"""Delta computation between two signatures, and delta replay."""

from typing import Dict, List, Mapping, Sequence

from common.checksums import compute_strong_hash
from common.logging_config import get_logger
from common.types import (
    BlockFingerprint,
    CopyInstruction,
    DeltaPlan,
    DeltaStats,
    FileSignature,
    InsertInstruction,
    Instruction,
)
from sync.exceptions import DeltaApplyError, SourceChangedError
from sync.source import ByteSource, open_source, read_exact

logger = get_logger(__name__)


def index_by_strong_hash(signature: FileSignature) -> Dict[str, BlockFingerprint]:
    """
    Map each distinct strong hash to the first remote block carrying it.

    Repeated content in the remote file resolves to its lowest index so the
    resulting plan is deterministic.
    """
    lookup: Dict[str, BlockFingerprint] = {}
    for fp in signature.signatures:
        lookup.setdefault(fp.strong_hash, fp)
    return lookup


def compute_delta(
    local_signature: FileSignature,
    remote_signature: FileSignature,
    source: ByteSource,
) -> DeltaPlan:
    """
    Classify every local block as reusable (Copy) or novel (Insert).

    Novel block bytes are re-read from `source` and checked against the
    local signature, so a file edited after it was fingerprinted is
    detected instead of silently uploaded.

    Args:
        local_signature: Signature of the candidate file
        remote_signature: Signature of the stored version
        source: The candidate file's bytes

    Returns:
        DeltaPlan with instructions in ascending destination order

    Raises:
        ValueError: If the two signatures use different block sizes
        ReadError: If the source cannot be read
        SourceChangedError: If the source no longer matches local_signature
    """
    if local_signature.block_size != remote_signature.block_size:
        raise ValueError(
            f"Block size mismatch: local={local_signature.block_size} "
            f"remote={remote_signature.block_size}"
        )

    remote_lookup = index_by_strong_hash(remote_signature)
    instructions: List[Instruction] = []
    novel_blocks: List[bytes] = []

    with open_source(source) as (stream, total_length):
        if total_length != local_signature.total_size:
            raise SourceChangedError(
                f"Source is {total_length} bytes but its signature covers {local_signature.total_size}"
            )

        for local in sorted(local_signature.signatures, key=lambda fp: fp.index):
            remote = remote_lookup.get(local.strong_hash)
            if remote is not None:
                instructions.append(CopyInstruction(
                    source_index=remote.index,
                    dest_index=local.index,
                    length=local.length,
                ))
                continue

            data = read_exact(stream, local.offset, local.length)
            if len(data) != local.length or compute_strong_hash(data) != local.strong_hash:
                raise SourceChangedError(f"Block {local.index} changed since its signature was computed")
            instructions.append(InsertInstruction(
                block_index=len(novel_blocks),
                dest_index=local.index,
                length=local.length,
            ))
            novel_blocks.append(data)

    total = local_signature.total_blocks
    stats = DeltaStats(
        total_blocks=total,
        novel_blocks=len(novel_blocks),
        reused_blocks=total - len(novel_blocks),
        original_size=local_signature.total_size,
        delta_size=sum(len(b) for b in novel_blocks),
    )
    logger.info(
        f"Computed delta: {stats.reused_blocks}/{stats.total_blocks} blocks reused, "
        f"{stats.novel_blocks} novel ({stats.delta_size} bytes), savings={stats.savings_percent:.1f}%"
    )
    return DeltaPlan(
        instructions=tuple(instructions),
        novel_blocks=tuple(novel_blocks),
        stats=stats,
        block_size=local_signature.block_size,
    )


def apply_delta(
    instructions: Sequence[Instruction],
    novel_blocks: Mapping[int, bytes],
    base_blocks: Sequence[bytes],
) -> bytes:
    """
    Rebuild a file by replaying instructions in ascending destination order.

    Args:
        instructions: Copy/Insert steps, in any order
        novel_blocks: Transmitted payloads keyed by Insert block_index
        base_blocks: The stored version split into blocks, by index

    Returns:
        The reconstructed file bytes

    Raises:
        DeltaApplyError: On a missing block, a length mismatch, or a gap
            in destination indices
    """
    ordered = sorted(instructions, key=lambda i: i.dest_index)
    parts = []
    for position, instruction in enumerate(ordered):
        if instruction.dest_index != position:
            raise DeltaApplyError(f"Destination indices not contiguous at {position}")

        if isinstance(instruction, CopyInstruction):
            if not 0 <= instruction.source_index < len(base_blocks):
                raise DeltaApplyError(f"Copy source block {instruction.source_index} does not exist")
            data = base_blocks[instruction.source_index]
        else:
            data = novel_blocks.get(instruction.block_index)
            if data is None:
                raise DeltaApplyError(f"Novel block {instruction.block_index} was not received")

        if len(data) != instruction.length:
            raise DeltaApplyError(
                f"Block for destination {instruction.dest_index} is {len(data)} bytes, "
                f"expected {instruction.length}"
            )
        parts.append(data)

    return b''.join(parts)


def split_blocks(data: bytes, block_size: int) -> List[bytes]:
    """Split `data` into consecutive `block_size` pieces (last may be short)."""
    return [data[offset:offset + block_size] for offset in range(0, len(data), block_size)]


def replay_plan(plan: DeltaPlan, base_data: bytes) -> bytes:
    """Reconstruct the new file from a plan and the stored version's bytes."""
    return apply_delta(
        plan.instructions,
        dict(enumerate(plan.novel_blocks)),
        split_blocks(base_data, plan.block_size),
    )
