"""Wire message definitions for signatures and delta manifests (JSON)."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple
import json

from common.types import (
    BlockFingerprint,
    CopyInstruction,
    FileSignature,
    InsertInstruction,
    Instruction,
)

COPY = "COPY"
INSERT = "INSERT"


class ProtocolError(ValueError):
    """Raised when a wire message is malformed."""
    pass


def signature_to_dict(signature: FileSignature) -> Dict[str, Any]:
    """Serialize a FileSignature to its JSON-compatible form."""
    return {
        'blockSize': signature.block_size,
        'totalBlocks': signature.total_blocks,
        'signatures': [
            {
                'index': fp.index,
                'offset': fp.offset,
                'length': fp.length,
                'weakHash': fp.weak_hash,
                'hash': fp.strong_hash,
            }
            for fp in signature.signatures
        ],
    }


def signature_from_dict(obj: Dict[str, Any]) -> FileSignature:
    """
    Deserialize and validate a FileSignature.

    Block indices must be 0-based and contiguous, offsets must tile the file
    without gaps, and only the final block may be shorter than blockSize.

    Raises:
        ProtocolError: If the message is malformed
    """
    try:
        block_size = int(obj['blockSize'])
        raw_blocks = obj.get('signatures') or []
        fingerprints = [
            BlockFingerprint(
                index=int(raw['index']),
                offset=int(raw['offset']),
                length=int(raw['length']),
                weak_hash=int(raw.get('weakHash', 0)),
                strong_hash=str(raw['hash']),
            )
            for raw in raw_blocks
        ]
    except (KeyError, TypeError, ValueError) as e:
        raise ProtocolError(f"Malformed signature: {e}") from e

    if block_size <= 0:
        raise ProtocolError(f"Invalid block size: {block_size}")

    fingerprints.sort(key=lambda fp: fp.index)
    expected_offset = 0
    for position, fp in enumerate(fingerprints):
        if fp.index != position:
            raise ProtocolError(f"Block indices not contiguous at {position}")
        if fp.offset != expected_offset:
            raise ProtocolError(f"Block {fp.index} offset {fp.offset} != {expected_offset}")
        is_last = position == len(fingerprints) - 1
        if fp.length <= 0 or fp.length > block_size or (not is_last and fp.length != block_size):
            raise ProtocolError(f"Block {fp.index} has invalid length {fp.length}")
        expected_offset += fp.length

    return FileSignature(block_size=block_size, signatures=tuple(fingerprints))


def instruction_to_dict(instruction: Instruction) -> Dict[str, Any]:
    if isinstance(instruction, CopyInstruction):
        return {
            'type': COPY,
            'sourceIndex': instruction.source_index,
            'destIndex': instruction.dest_index,
            'length': instruction.length,
        }
    return {
        'type': INSERT,
        'blockIndex': instruction.block_index,
        'destIndex': instruction.dest_index,
        'length': instruction.length,
    }


def instruction_from_dict(obj: Dict[str, Any]) -> Instruction:
    try:
        kind = obj['type']
        if kind == COPY:
            return CopyInstruction(
                source_index=int(obj['sourceIndex']),
                dest_index=int(obj['destIndex']),
                length=int(obj['length']),
            )
        if kind == INSERT:
            return InsertInstruction(
                block_index=int(obj['blockIndex']),
                dest_index=int(obj['destIndex']),
                length=int(obj['length']),
            )
    except (KeyError, TypeError, ValueError) as e:
        raise ProtocolError(f"Malformed instruction: {e}") from e
    raise ProtocolError(f"Unknown instruction type: {kind!r}")


@dataclass
class DeltaManifest:
    """Instruction list for one delta upload, sent after the novel blocks."""
    base_file_id: str
    instructions: Tuple[Instruction, ...] = ()
    novel_block_count: int = 0
    total_size: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'baseFileId': self.base_file_id,
            'instructions': [instruction_to_dict(i) for i in self.instructions],
            'novelBlockCount': self.novel_block_count,
            'totalSize': self.total_size,
        }

    def to_json(self) -> bytes:
        """Serialize to JSON bytes."""
        return json.dumps(self.to_dict()).encode('utf-8')

    @classmethod
    def from_dict(cls, obj: Dict[str, Any]) -> 'DeltaManifest':
        try:
            base_file_id = str(obj['baseFileId'])
            raw_instructions: List[Dict[str, Any]] = obj.get('instructions') or []
            novel_block_count = int(obj.get('novelBlockCount', 0))
            total_size = obj.get('totalSize')
        except (KeyError, TypeError, ValueError) as e:
            raise ProtocolError(f"Malformed delta manifest: {e}") from e
        return cls(
            base_file_id=base_file_id,
            instructions=tuple(instruction_from_dict(raw) for raw in raw_instructions),
            novel_block_count=novel_block_count,
            total_size=int(total_size) if total_size is not None else None,
        )

    @classmethod
    def from_json(cls, data: bytes) -> 'DeltaManifest':
        """Deserialize from JSON bytes."""
        try:
            obj = json.loads(data)
        except json.JSONDecodeError as e:
            raise ProtocolError(f"Invalid JSON: {e}") from e
        return cls.from_dict(obj)


def novel_block_field(block_index: int) -> str:
    """Multipart field name carrying novel block `block_index`."""
    return f"block_{block_index}"


def parse_novel_block_field(name: str) -> Optional[int]:
    if not name.startswith("block_"):
        return None
    try:
        return int(name[len("block_"):])
    except ValueError:
        return None
