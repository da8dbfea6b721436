"""
通用工具函数模块
"""

import os
from pathlib import Path

CONFIG_FILE_NAMES = ['config.json', 'config.yaml', 'config.yml', 'config.toml']


def get_config_path() -> Path:
    """获取默认配置文件路径"""
    # 首先尝试从环境变量获取
    config_path = os.getenv('CATALOG_SCANNER_CONFIG')
    if config_path:
        return Path(config_path)

    # 尝试当前目录
    current_dir = Path.cwd()
    for config_file in CONFIG_FILE_NAMES:
        candidate = current_dir / config_file
        if candidate.exists():
            return candidate

    # 默认返回当前目录下的JSON配置文件路径
    return current_dir / 'config.json'


def truncate(text: str, limit: int = 80) -> str:
    """截断过长的文本用于显示"""
    return text if len(text) <= limit else text[:limit - 3] + '...'
