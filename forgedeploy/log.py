"""
Logging setup for the deployer
"""

import logging
import os

LOGGER_NAME = 'forgedeploy'


def setup_logging(log_dir: str = 'logs', debug: bool = None) -> logging.Logger:
    """Configure the `forgedeploy` logger with a file and a console handler

    Safe to call more than once; handlers are only attached the first time.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)

    if logger.handlers:
        return logger

    if debug is None:
        debug = os.getenv('FORGE_DEBUG', 'false').lower() == 'true'

    os.makedirs(log_dir, exist_ok=True)

    file_handler = logging.FileHandler(os.path.join(log_dir, 'deployer.log'), encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if debug else logging.INFO)

    formatter = logging.Formatter(
        '%(asctime)s | %(levelname)s | %(message)s'
    )
    file_handler.setFormatter(formatter)
    console_handler.setFormatter(formatter)

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)
    return logger
