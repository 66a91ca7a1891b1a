import logging
import logging.handlers
import os
from datetime import datetime
from typing import Optional

CONSOLE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(pathname)s:%(lineno)d - %(message)s'


def setup_logging(
    log_dir: Optional[str] = None,
    log_level: int = logging.INFO,
    node_id: Optional[str] = None
) -> None:
    """Configure the logging system

    Args:
        log_dir: Directory for rotating log files. Console only when None
        log_level: Logging level
        node_id: Node identifier used in the log file names
    """
    handlers = []

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    handlers.append(console_handler)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

        base_filename = datetime.now().strftime("%Y%m%d")
        if node_id:
            base_filename = f"{base_filename}_{node_id[:12]}"

        file_handler = logging.handlers.RotatingFileHandler(
            filename=os.path.join(log_dir, f"{base_filename}.log"),
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        handlers.append(file_handler)

        error_handler = logging.handlers.RotatingFileHandler(
            filename=os.path.join(log_dir, f"{base_filename}_error.log"),
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        handlers.append(error_handler)

    # force=True so a second call (tests, re-exec) replaces the handlers
    logging.basicConfig(
        level=log_level,
        handlers=handlers,
        force=True
    )

    logging.getLogger('gossipchain').setLevel(log_level)

    logging.info(f"Logging initialized for node {node_id}")
    if log_dir:
        logging.info(f"Log directory: {os.path.abspath(log_dir)}")
    logging.info(f"Log level: {logging.getLevelName(log_level)}")


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the gossipchain namespace

    Args:
        name: Logger name

    Returns:
        Configured logger
    """
    return logging.getLogger(f"gossipchain.{name}")


class LoggerAdapter(logging.LoggerAdapter):
    """Adapter that prefixes log messages with node context"""

    def process(self, msg, kwargs):
        context = {
            'node_id': self.extra.get('node_id'),
            'component': self.extra.get('component'),
            'peer_id': self.extra.get('peer_id')
        }

        context_str = ' '.join(f'[{k}={v}]' for k, v in context.items() if v)

        if context_str:
            msg = f"{context_str} {msg}"

        return msg, kwargs


def get_component_logger(
    component: str,
    node_id: Optional[str] = None,
    peer_id: Optional[str] = None
) -> LoggerAdapter:
    """Return a logger adapter for a component

    Args:
        component: Component name
        node_id: Local node id (shortened in the output)
        peer_id: Remote peer id

    Returns:
        Logger adapter carrying the context
    """
    logger = get_logger(component)

    extra = {
        'component': component,
        'node_id': node_id[:12] if node_id else None,
        'peer_id': peer_id
    }

    return LoggerAdapter(logger, extra)
