"""Image Task Queue.

An in-process job queue for image-generation prompts:
- bounded concurrent execution with FIFO dispatch
- retry with exponential backoff and jitter for transient failures
- live event streaming to any number of observers (Server-Sent Events)
"""

__version__ = "0.1.0"

from image_task_queue.config import BackendSettings, QueueSettings

__all__ = ["__version__", "BackendSettings", "QueueSettings"]
