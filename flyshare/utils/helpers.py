import sys
import logging

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level="INFO"):
    """Attach a stderr handler to the package logger once."""
    logger = logging.getLogger("flyshare")
    logger.setLevel(level)
    if not logger.hasHandlers():
        ch = logging.StreamHandler()
        ch.setLevel(logging.DEBUG)
        ch.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(ch)
    return logger


class ProgressTracker:
    """
    Turns byte counts into whole percentages of a known total.

    update() returns the new percentage only when it has grown since the
    last call, so callers never see the same value twice.
    """

    def __init__(self, total, out=None):
        self.total = total
        self.out = out
        self.last_percent = -1

    def percent(self, done):
        if self.total <= 0:
            return 100
        return min(100, done * 100 // self.total)

    def update(self, done):
        percent = self.percent(done)
        if percent <= self.last_percent:
            return None
        self.last_percent = percent
        if self.out is not None:
            self.out.write(f"\rProgress: {percent}%")
            self.out.flush()
        return percent

    def finish(self):
        if self.out is not None:
            self.out.write("\rProgress: 100%\n")
            self.out.flush()


def console_progress(total):
    return ProgressTracker(total, out=sys.stdout)


def format_size(size):
    # binary units, like "3.00 MiB"
    value = float(size)
    for unit in ("B", "KiB", "MiB", "GiB", "TiB"):
        if value < 1024 or unit == "TiB":
            if unit == "B":
                return f"{int(value)} B"
            return f"{value:.2f} {unit}"
        value /= 1024


def format_duration(seconds):
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    minutes, secs = divmod(seconds, 60)
    hours, minutes = divmod(int(minutes), 60)
    if hours:
        return f"{hours}h {minutes}m {secs:.0f}s"
    if minutes:
        return f"{minutes}m {secs:.0f}s"
    return f"{secs:.2f}s"


def megabits_per_second(size, elapsed):
    if elapsed <= 0:
        return 0.0
    return 8.0 * (size / 1_000_000) / elapsed
