import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from matchmaking.config import Config

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def _daily_file_handler(formatter: logging.Formatter) -> Optional[logging.Handler]:
    """Handler for logs/matchmaking_YYYYMMDD.log, or None when LOG_DIR is blank"""
    if not Config.LOG_DIR:
        return None
    
    log_dir = Path(Config.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)
    
    handler = logging.FileHandler(
        log_dir / f'matchmaking_{datetime.now().strftime("%Y%m%d")}.log',
        encoding='utf-8'
    )
    # File keeps everything, console follows DEBUG
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(formatter)
    return handler


def setup_logger(name: str, level: Optional[int] = None) -> logging.Logger:
    """Get a module logger with the engine's console and file handlers attached once"""
    
    logger = logging.getLogger(name)
    
    if logger.handlers:
        return logger
    
    if level is None:
        level = logging.DEBUG if Config.DEBUG else logging.INFO
    logger.setLevel(level)
    
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    
    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(formatter)
    logger.addHandler(console)
    
    file_handler = _daily_file_handler(formatter)
    if file_handler:
        logger.addHandler(file_handler)
    
    return logger
