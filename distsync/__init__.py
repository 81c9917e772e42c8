"""Redis-coordinated reentrant lock and counting semaphore."""
