"""
Logging setup for the engine's audit trail.

Settlement lines go to a dated trades file, everything else to a dated engine
file and the console.
"""

import logging
from datetime import datetime
from pathlib import Path

LOG_FORMAT = '%(asctime)s | %(levelname)s | %(message)s'

# Loggers whose records make up the trade audit trail
TRADE_LOGGERS = ("trade_engine", "paper_wallet")


class _TradeRecordFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return record.name in TRADE_LOGGERS


def setup_logging(log_dir: str = "logs", console: bool = True, level: int = logging.INFO) -> logging.Logger:
    """Attach file and console handlers to the root logger"""
    Path(log_dir).mkdir(parents=True, exist_ok=True)
    today = datetime.now().strftime('%Y%m%d')

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # File handler - all logs
    file_handler = logging.FileHandler(f"{log_dir}/engine_{today}.log")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(file_handler)

    # Trade-specific log
    trade_handler = logging.FileHandler(f"{log_dir}/trades_{today}.log")
    trade_handler.setLevel(logging.INFO)
    trade_handler.addFilter(_TradeRecordFilter())
    trade_handler.setFormatter(logging.Formatter('%(asctime)s | %(message)s'))
    root.addHandler(trade_handler)

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(console_handler)

    return root
