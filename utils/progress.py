"""Progress bar and logged ETA for grid evaluation."""

from typing import Optional
import logging
from tqdm import tqdm
import time

class ProgressMonitor:
    def __init__(self, total: int, desc: str = "Fitting grid",
                 logger: Optional[logging.Logger] = None,
                 log_every: int = 10,
                 disable: bool = False):
        """Initialize progress monitor with total cells and description"""
        self.logger = logger or logging.getLogger('progress')
        self.pbar = tqdm(total=total, desc=desc, disable=disable)
        self.total = total
        self.current = 0
        self.failed = 0
        self.log_every = max(1, log_every)
        self.start_time = time.time()
        self.description = desc

    def update(self, n: int = 1, status: str = "", failed: bool = False):
        """Advance by n cells with optional status message"""
        self.current += n
        if failed:
            self.failed += n
        self.pbar.update(n)

        if status:
            self.logger.debug(f"{self.description}: {status}")

        if self.current % self.log_every == 0 or self.current == self.total:
            elapsed = time.time() - self.start_time
            progress = self.current / self.total if self.total else 1.0
            eta = (elapsed / progress) * (1 - progress) if progress > 0 else 0

            self.logger.info(
                f"Progress: {self.current}/{self.total} "
                f"({progress*100:.1f}%) - "
                f"Failed: {self.failed} - "
                f"Elapsed: {elapsed:.1f}s - "
                f"ETA: {eta:.1f}s"
            )

    def close(self):
        """Close progress bar and log final statistics"""
        self.pbar.close()
        total_time = time.time() - self.start_time
        self.logger.info(
            f"Completed {self.description}: {self.current - self.failed}/{self.total} "
            f"cells fitted in {total_time:.1f} seconds"
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
