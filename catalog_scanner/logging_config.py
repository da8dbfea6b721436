"""
日志配置

所有模块的日志器都挂在 CatalogScanner 根日志器下，
由 setup_logging 统一添加控制台与文件输出。
"""

import logging
from pathlib import Path
from typing import Optional

ROOT_LOGGER_NAME = 'CatalogScanner'
LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """初始化根日志器，重复调用不会重复添加 handler"""
    root = logging.getLogger(ROOT_LOGGER_NAME)
    if root.handlers:
        return root

    root.setLevel(logging.getLevelNamesMapping().get(level.upper(), logging.INFO))
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    handlers = [logging.StreamHandler()]
    file_problem = None
    if log_file:
        path = Path(log_file)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(path, encoding='utf-8'))
        except OSError as exc:
            file_problem = exc

    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    if file_problem is not None:
        root.warning(f"日志文件不可用，仅输出到控制台: {log_file} ({file_problem})")
    return root


def get_logger(name: str) -> logging.Logger:
    """返回 CatalogScanner.<name> 子日志器"""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
