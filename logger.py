# logger.py
import logging
import colorlog
import config

LOG_COLORS = {
    'DEBUG': 'cyan',
    'INFO': 'green',
    'WARNING': 'yellow',
    'ERROR': 'red',
    'CRITICAL': 'bold_red',
}


def get_logger(name: str, level: str = "INFO") -> logging.Logger:
    """Creates a colored logger for console and file output.
    Returns the existing logger untouched if it already has handlers.
    """
    logger = colorlog.getLogger(name)
    if logger.handlers:
        return logger

    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.propagate = False

    console_handler = colorlog.StreamHandler()
    console_handler.setFormatter(colorlog.ColoredFormatter(
        "%(log_color)s%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%H:%M:%S",
        log_colors=LOG_COLORS,
    ))
    logger.addHandler(console_handler)

    file_handler = logging.FileHandler(config.LOG_FILE, encoding="utf-8")
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    ))
    logger.addHandler(file_handler)

    return logger


class AccountAdapter(logging.LoggerAdapter):
    """Prefixes every message with the account's short address."""

    def process(self, msg, kwargs):
        return f"Account {self.extra['account']}: {msg}", kwargs


def get_account_logger(logger: logging.Logger, label: str) -> AccountAdapter:
    return AccountAdapter(logger, {"account": label})
