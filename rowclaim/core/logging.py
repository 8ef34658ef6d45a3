# rowclaim/core/logging.py
import logging
import sys
from datetime import datetime

# Applied to loggers created after the change; see set_default_level().
_default_level: int = logging.INFO


class ColoredFormatter(logging.Formatter):
    """Tabular colored formatter: [time] [component] [level] message"""

    RESET = '\033[0m'
    TIME_COLOR = '\033[94m'
    TEXT_COLOR = '\033[97m'

    LEVEL_COLORS = {
        'DEBUG': '\033[90m',
        'INFO': '\033[92m',
        'WARNING': '\033[93m',
        'ERROR': '\033[91m',
        'CRITICAL': '\033[1;91m',
    }

    COMPONENT_WIDTH = 12  # fits [loop_runner]
    LEVEL_WIDTH = 10  # fits [CRITICAL]

    def format(self, record: logging.LogRecord) -> str:
        time_str = datetime.fromtimestamp(record.created).strftime('%H:%M:%S')

        # 'rowclaim.broker' -> 'broker'
        component = record.name.rsplit('.', 1)[-1]
        component_col = f'[{component}]'.ljust(self.COMPONENT_WIDTH + 2)
        level_col = f'[{record.levelname}]'.ljust(self.LEVEL_WIDTH)
        level_color = self.LEVEL_COLORS.get(record.levelname, self.TEXT_COLOR)

        formatted = (
            f'{self.TIME_COLOR}[{time_str}]{self.RESET} '
            f'{self.TEXT_COLOR}{component_col}{self.RESET}'
            f'{level_color}{level_col}{self.RESET}'
            f'{self.TEXT_COLOR}{record.getMessage()}{self.RESET}'
        )

        if record.exc_info:
            formatted += '\n' + self.formatException(record.exc_info)

        return formatted


def set_default_level(level: int) -> None:
    """Set the level used for loggers created from now on."""
    global _default_level
    _default_level = level


def get_logger(component_name: str) -> logging.Logger:
    """Get the `rowclaim.<component_name>` logger, configuring it on first use."""
    logger = logging.getLogger(f'rowclaim.{component_name}')

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(ColoredFormatter())
        handler.setLevel(_default_level)
        logger.addHandler(handler)
        logger.setLevel(_default_level)
        # Handled here; the root logger would print it twice.
        logger.propagate = False

    return logger
