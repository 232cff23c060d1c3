"""
Batch Coordination

Chunked parallel or sequential execution of payslip batches with a
chunk barrier, cooperative cancellation and a wall-clock ceiling.
"""

from payslips.batching.coordinator import BatchCoordinator, chunked
from payslips.batching.waiter import ChunkWaiter, FuturesChunkWaiter

__all__ = [
    "BatchCoordinator",
    "ChunkWaiter",
    "FuturesChunkWaiter",
    "chunked",
]
