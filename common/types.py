"""Shared data type definitions (Block, FileSignature, DeltaPlan, etc.)."""

from dataclasses import dataclass
from typing import Optional, Tuple, Union


@dataclass(frozen=True)
class Block:
    """
    A contiguous byte range of a file.
    """
    index: int
    offset: int
    length: int


@dataclass(frozen=True)
class BlockFingerprint:
    """
    Identity of one block's content.

    strong_hash is the authoritative equality key; weak_hash is advisory.
    """
    index: int
    offset: int
    length: int
    weak_hash: int
    strong_hash: str


@dataclass(frozen=True)
class FileSignature:
    """
    Ordered block fingerprints for one complete file.
    """
    block_size: int
    signatures: Tuple[BlockFingerprint, ...] = ()

    @property
    def total_blocks(self) -> int:
        return len(self.signatures)

    @property
    def total_size(self) -> int:
        return sum(fp.length for fp in self.signatures)

    def __iter__(self):
        return iter(self.signatures)

    def __len__(self) -> int:
        return len(self.signatures)


@dataclass(frozen=True)
class CopyInstruction:
    """Reuse remote block `source_index` at position `dest_index`."""
    source_index: int
    dest_index: int
    length: int


@dataclass(frozen=True)
class InsertInstruction:
    """Place transmitted novel block `block_index` at position `dest_index`."""
    block_index: int
    dest_index: int
    length: int


Instruction = Union[CopyInstruction, InsertInstruction]


@dataclass(frozen=True)
class DeltaStats:
    """
    Block counts and savings for one delta computation.
    """
    total_blocks: int
    novel_blocks: int
    reused_blocks: int
    original_size: int = 0
    delta_size: int = 0

    @property
    def savings_percent(self) -> float:
        if self.total_blocks == 0:
            return 100.0
        return self.reused_blocks * 100 / self.total_blocks


@dataclass(frozen=True)
class DeltaPlan:
    """
    Reconstruction instructions plus the novel block payloads they reference.
    """
    instructions: Tuple[Instruction, ...]
    novel_blocks: Tuple[bytes, ...]
    stats: DeltaStats
    block_size: int

    @property
    def is_empty(self) -> bool:
        return not self.instructions


@dataclass
class UploadResult:
    """
    Outcome of a successful upload.
    """
    file_id: str
    session_id: str
    mode: str
    stats: DeltaStats
    fallback_reason: Optional[str] = None
    base_file_id: Optional[str] = None
