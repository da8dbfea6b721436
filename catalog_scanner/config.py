"""
配置管理

配置文件可以是 JSON、YAML 或 TOML；CATALOG_* 环境变量优先于文件内容，
开启 hot_reload 后修改文件会自动重载。
"""

from __future__ import annotations

import asyncio
import json
import os
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, ValidationError, field_validator
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .exceptions import ConfigError, ConfigValidationError
from .identifiers import IssnPolicy, ThirteenDigitAs
from .logging_config import get_logger


class ClipboardConfig(BaseModel):
    """剪贴板轮询配置"""
    enabled: bool = True
    interval: float = 0.5  # 轮询间隔(秒)
    pause_when_unfocused: bool = False
    thirteen_digit_as: ThirteenDigitAs = ThirteenDigitAs.ISBN

    @field_validator('interval')
    @classmethod
    def validate_interval(cls, v: float) -> float:
        """验证轮询间隔"""
        if v < 0.1 or v > 60:
            raise ValueError('轮询间隔必须在0.1-60秒之间')
        return v


class ScannerConfig(BaseModel):
    """键盘扫码枪配置"""
    enabled: bool = True
    max_inter_key_delay_ms: int = 50  # 按键间隔超过该值视为新的扫描
    max_scan_length: int = 32
    thirteen_digit_as: ThirteenDigitAs = ThirteenDigitAs.EAN

    @field_validator('max_inter_key_delay_ms')
    @classmethod
    def validate_delay(cls, v: int) -> int:
        """验证按键间隔阈值"""
        if v <= 0 or v > 1000:
            raise ValueError('按键间隔阈值必须在1-1000毫秒之间')
        return v

    @field_validator('max_scan_length')
    @classmethod
    def validate_length(cls, v: int) -> int:
        """验证扫描长度上限"""
        if v < 8 or v > 256:
            raise ValueError('扫描长度上限必须在8-256之间')
        return v


class ClassifierConfig(BaseModel):
    """标识符分类配置"""
    issn_policy: IssnPolicy = IssnPolicy.PERMISSIVE


class BackendConfig(BaseModel):
    """目录后端（invoke 桥）配置"""
    base_url: str = "http://127.0.0.1:1420"
    timeout: float = 30.0
    max_retries: int = 3
    retry_delay: float = 1.0

    @field_validator('base_url')
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """验证后端地址"""
        if not v.startswith(('http://', 'https://')):
            raise ValueError('后端地址必须以http://或https://开头')
        return v.rstrip('/')

    @field_validator('timeout')
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """验证超时时间"""
        if v <= 0 or v > 300:
            raise ValueError('超时时间必须在0-300秒之间')
        return v

    @field_validator('max_retries')
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        """重试次数 1-10"""
        if v < 1 or v > 10:
            raise ValueError('最大重试次数必须在1-10之间')
        return v


class DispatchConfig(BaseModel):
    """分发行为配置"""
    # EAN 找到已有系列条目时复制一份，等待手动填写期号
    clone_on_existing_code: bool = True


class ConsoleNotificationConfig(BaseModel):
    """控制台输出选项"""
    enabled: bool = True
    colored: bool = True
    show_statistics: bool = True


class NotificationConfig(BaseModel):
    """通知选项"""
    console: ConsoleNotificationConfig = ConsoleNotificationConfig()
    success_sound: bool = True
    error_sound: bool = True


class AppConfig(BaseModel):
    """顶层配置"""
    clipboard: ClipboardConfig = ClipboardConfig()
    scanner: ScannerConfig = ScannerConfig()
    classifier: ClassifierConfig = ClassifierConfig()
    backend: BackendConfig = BackendConfig()
    dispatch: DispatchConfig = DispatchConfig()
    notifications: NotificationConfig = NotificationConfig()
    history_size: int = 1000
    hot_reload: bool = True
    log_level: str = "INFO"
    log_file: Optional[str] = "catalog_scanner.log"

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """验证日志级别"""
        level = v.upper()
        if level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ValueError(f'未知的日志级别: {v}')
        return level

    @field_validator('history_size')
    @classmethod
    def validate_history_size(cls, v: int) -> int:
        """历史记录条数 1-100000"""
        if v < 1 or v > 100000:
            raise ValueError('历史记录条数必须在1-100000之间')
        return v


class ConfigWatcher(FileSystemEventHandler):
    """只关心目标配置文件的 watchdog 处理器"""

    def __init__(self, manager: "ConfigManager", loop: Optional[asyncio.AbstractEventLoop] = None):
        self.manager = manager
        self.loop = loop
        self.logger = get_logger('Config.Watcher')

    def on_modified(self, event):
        if event.is_directory:
            return
        if Path(event.src_path).resolve() != self.manager.config_path.resolve():
            return

        self.logger.info(f"检测到配置变更: {event.src_path}")
        # watchdog 回调运行在观察者线程，不能阻塞它
        threading.Thread(target=self._schedule_reload, daemon=True).start()

    def _schedule_reload(self):
        if self.loop is not None and self.loop.is_running():
            asyncio.run_coroutine_threadsafe(self.manager.reload_config(), self.loop)
            return
        try:
            asyncio.run(self.manager.reload_config())
        except Exception as e:
            self.logger.error(f"后台重载配置出错: {e}")


ENV_OVERRIDES = (
    # (环境变量, 配置段, 字段)
    ('CATALOG_BACKEND_URL', 'backend', 'base_url'),
    ('CATALOG_LOG_LEVEL', None, 'log_level'),
)


def read_config_document(path: Path) -> Dict[str, Any]:
    """按扩展名解析 JSON / YAML / TOML 配置文档"""
    suffix = path.suffix.lower()
    try:
        if suffix == '.toml':
            import tomllib
            return tomllib.loads(path.read_text(encoding='utf-8'))
        text = path.read_text(encoding='utf-8')
        if suffix in ('.yaml', '.yml'):
            import yaml
            return yaml.safe_load(text) or {}
        return json.loads(text)
    except Exception as e:
        raise ConfigError(f"无法解析配置文件 {path.name}: {e}") from e


def apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    """用 CATALOG_* 环境变量覆盖文件中的值"""
    for env_name, section, field in ENV_OVERRIDES:
        value = os.getenv(env_name)
        if not value:
            continue
        if section is None:
            data[field] = value
        else:
            target = dict(data.get(section) or {})
            target[field] = value
            data[section] = target
    return data


class ConfigManager:
    """配置管理器

    负责定位、解析、校验配置文件，并在 hot_reload 开启时
    通过 watchdog 监听文件变化、通知已注册的回调。
    """

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        self.logger = get_logger('ConfigManager')
        if config_path is not None:
            self.config_path = Path(config_path)
        else:
            from .utils import get_config_path
            self.config_path = get_config_path()

        self.config: Optional[AppConfig] = None
        self.observer: Optional[Observer] = None
        self._callbacks: List[Callable] = []
        self.load_count = 0

    def _prune_unknown(self, data: Any) -> Dict[str, Any]:
        if not isinstance(data, dict):
            raise ConfigError("配置文件顶层必须是对象")
        unknown = sorted(set(data) - set(AppConfig.model_fields))
        if unknown:
            self.logger.warning(f"忽略未知的配置项: {', '.join(unknown)}")
        return {key: value for key, value in data.items() if key not in unknown}

    def _build(self, path: Path) -> AppConfig:
        data = self._prune_unknown(read_config_document(path))
        try:
            return AppConfig(**apply_env_overrides(data))
        except ValidationError as e:
            raise ConfigValidationError(f"配置验证失败: {e}", e.errors(include_url=False)) from e

    async def load_config(self) -> AppConfig:
        """读取配置文件（不存在时先生成默认配置）"""
        started = time.perf_counter()

        if not self.config_path.exists():
            self._create_default_config()
        try:
            config = self._build(self.config_path)
        except ConfigError:
            raise
        except Exception as e:
            raise ConfigError(f"读取配置失败: {e}") from e

        self.config = config
        self.load_count += 1
        if config.hot_reload:
            self._watch()

        elapsed = time.perf_counter() - started
        self.logger.info(f"已加载配置 {self.config_path} ({elapsed * 1000:.1f}ms)")
        return config

    def _watch(self):
        if self.observer is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        observer = Observer()
        observer.schedule(ConfigWatcher(self, loop), str(self.config_path.parent), recursive=False)
        observer.start()
        self.observer = observer
        self.logger.info("已开启配置热加载")

    async def reload_config(self):
        """重新读取配置；失败时保留旧配置"""
        previous = self.config
        try:
            current = await self.load_config()
        except Exception as e:
            self.logger.error(f"重载配置失败，继续使用旧配置: {e}")
            return

        for callback in list(self._callbacks):
            try:
                result = callback(previous, current)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                self.logger.error(f"配置变更回调出错: {e}")
        self.logger.info("🔄 配置已重载")

    def register_reload_callback(self, callback: Callable):
        """回调签名: callback(old_config, new_config)，可为协程函数"""
        self._callbacks.append(callback)

    def stop_file_watcher(self):
        observer, self.observer = self.observer, None
        if observer is None:
            return
        observer.stop()
        observer.join()
        self.logger.info("已关闭配置热加载")

    def validate_config_file(self, config_path: Optional[Path] = None) -> bool:
        """只做校验，不修改当前配置"""
        path = Path(config_path) if config_path else self.config_path
        if not path.exists():
            self.logger.error(f"找不到配置文件: {path}")
            return False
        try:
            self._build(path)
        except Exception as e:
            self.logger.error(f"配置文件 {path} 无效: {e}")
            return False
        self.logger.info(f"配置文件有效: {path}")
        return True

    def cleanup(self):
        self.stop_file_watcher()
        self._callbacks.clear()

    def _create_default_config(self):
        """把默认配置写到 config_path（支持 JSON 与 YAML）"""
        suffix = self.config_path.suffix.lower()
        if suffix == '.toml':
            raise ConfigError("不支持生成TOML格式的默认配置，请使用JSON或YAML")

        defaults = AppConfig().model_dump(mode='json')
        if suffix in ('.yaml', '.yml'):
            import yaml
            content = yaml.safe_dump(defaults, allow_unicode=True, sort_keys=False)
        else:
            content = json.dumps(defaults, indent=4, ensure_ascii=False)

        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            self.config_path.write_text(content, encoding='utf-8')
        except OSError as e:
            raise ConfigError(f"无法写入默认配置 {self.config_path}: {e}") from e
        self.logger.info(f"已生成默认配置: {self.config_path}")
