# src/companion_memory/utils/formatters.py
from typing import List

from ..models.schemas.memory import MemoryKind, MemoryResponse


def format_memories_for_context(
    memories: List[MemoryResponse],
    max_memories: int = 5
) -> str:
    """Format ranked memories for prompt assembly"""

    if not memories:
        return ""

    formatted_memories = []
    for memory in memories[:max_memories]:
        importance = memory.emotional_context.importance

        if memory.kind == MemoryKind.SYNTHETIC:
            # Never presented as a confirmed fact
            line = f"- (continuity) {memory.content}"
        elif importance >= 9:
            line = f"- {memory.content} [core]"
        elif importance >= 7:
            line = f"- {memory.content} [important]"
        else:
            line = f"- {memory.content}"

        formatted_memories.append(line)

    return "\n".join(formatted_memories)
