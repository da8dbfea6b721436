"""命令行入口

catalog-scanner start            启动剪贴板/键盘扫码监控
catalog-scanner classify TEXT    离线查看一段文本会被如何识别
catalog-scanner validate-config  检查配置文件
catalog-scanner test-connection  检查目录后端是否可达
catalog-scanner create-config    生成默认配置
"""

import asyncio
import logging
import signal
import sys
from typing import Optional

import click

from .__version__ import get_version_string
from .bridge_client import InvokeBridgeClient
from .config import AppConfig, ConfigManager
from .dispatch import decide
from .exceptions import BackendError, ConfigError
from .identifiers import IssnPolicy, ThirteenDigitAs, classify as classify_text
from .logging_config import setup_logging
from .scan_monitor import ScanMonitor
from .utils import get_config_path

STATUS_INTERVAL = 300
SHUTDOWN_TIMEOUT = 10.0


class CatalogScannerApp:
    """把配置、后端客户端和扫码监控组装起来，并负责信号与关闭流程"""

    def __init__(self, config_path: Optional[str] = None, log_level: Optional[str] = None,
                 clipboard: bool = True, keyboard: bool = True):
        self.config_path = config_path
        self.log_level = log_level
        self.clipboard_enabled = clipboard
        self.keyboard_enabled = keyboard
        self.config_manager: Optional[ConfigManager] = None
        self.config: Optional[AppConfig] = None
        self.backend: Optional[InvokeBridgeClient] = None
        self.scan_monitor: Optional[ScanMonitor] = None
        self.logger: Optional[logging.Logger] = None
        self.shutdown_event = asyncio.Event()

    def _apply_cli_overrides(self, config: AppConfig):
        if self.log_level:
            config.log_level = self.log_level.upper()
        config.clipboard.enabled = config.clipboard.enabled and self.clipboard_enabled
        config.scanner.enabled = config.scanner.enabled and self.keyboard_enabled

    async def initialize(self):
        self.config_manager = ConfigManager(self.config_path)
        self.config = await self.config_manager.load_config()
        self._apply_cli_overrides(self.config)

        self.logger = setup_logging(level=self.config.log_level, log_file=self.config.log_file)
        self.backend = InvokeBridgeClient(self.config.backend)
        self.scan_monitor = ScanMonitor(self.backend, self.config)
        self.config_manager.register_reload_callback(self._on_config_reload)

        self.logger.info(f"📚 catalog-scanner v{get_version_string()}")
        self.logger.info(f"   配置: {self.config_manager.config_path}")
        self.logger.info(f"   后端: {self.config.backend.base_url}")

    async def start(self):
        """运行到收到 SIGINT/SIGTERM 为止"""
        try:
            await self.initialize()
            self._setup_signal_handlers()
            await self._serve()
        except ConfigError as e:
            self._report_fatal(f"配置错误: {e}")
            sys.exit(1)
        except BackendError as e:
            self._report_fatal(f"后端错误: {e}")
            sys.exit(1)
        finally:
            await self.cleanup()

    async def _serve(self):
        monitor_task = asyncio.create_task(self.scan_monitor.start())
        reporter_task = asyncio.create_task(self._status_reporter())

        await self.shutdown_event.wait()
        self.logger.info("⏹️ 正在停止...")
        self.scan_monitor.stop()

        done, _ = await asyncio.wait({monitor_task}, timeout=SHUTDOWN_TIMEOUT)
        if not done:
            self.logger.warning(f"监控任务 {SHUTDOWN_TIMEOUT:.0f} 秒内未结束，强制取消")
            monitor_task.cancel()

        reporter_task.cancel()
        for result in await asyncio.gather(monitor_task, reporter_task, return_exceptions=True):
            if isinstance(result, Exception):
                self.logger.error(f"后台任务异常退出: {result}")

    def _report_fatal(self, message: str):
        if self.logger is None:
            click.echo(message, err=True)
        else:
            self.logger.error(message)

    async def cleanup(self):
        try:
            if self.scan_monitor is not None:
                # 监控清理时会等待进行中的调用并关闭后端
                await self.scan_monitor.cleanup()
            elif self.backend is not None:
                await self.backend.close()
        except Exception as e:
            if self.logger:
                self.logger.error(f"关闭时出错: {e}")
        finally:
            if self.config_manager is not None:
                self.config_manager.cleanup()

    def _setup_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, self._request_shutdown, signum)
            except NotImplementedError:
                # Windows 事件循环不支持 add_signal_handler
                signal.signal(signum, lambda s, frame: loop.call_soon_threadsafe(self._request_shutdown, s))

    def _request_shutdown(self, signum):
        self.logger.info(f"收到信号 {signal.Signals(signum).name}")
        self.shutdown_event.set()

    async def _status_reporter(self):
        while not self.shutdown_event.is_set():
            await asyncio.sleep(STATUS_INTERVAL)
            status = self.scan_monitor.get_status()
            stats = status['stats']
            self.logger.info(
                f"📈 扫描 {stats['total_scans']} | 入库 {stats['items_added']} | "
                f"重复 {stats['duplicates_skipped']} | 失败 {stats['lookup_failures']} | "
                f"进行中 {status['in_flight']}"
            )

    async def _on_config_reload(self, old_config: Optional[AppConfig], new_config: AppConfig):
        """热加载只更新可在运行中调整的参数，其余改动需要重启"""
        self._apply_cli_overrides(new_config)
        self.config = new_config

        if old_config is None or old_config.log_level != new_config.log_level:
            self.logger.setLevel(new_config.log_level)
            self.logger.info(f"日志级别 -> {new_config.log_level}")

        if self.scan_monitor is not None:
            self.scan_monitor.poller.config.interval = new_config.clipboard.interval
            self.scan_monitor.executor.clone_on_existing_code = new_config.dispatch.clone_on_existing_code
            self.scan_monitor.aggregator.max_inter_key_delay = new_config.scanner.max_inter_key_delay_ms / 1000


@click.group()
@click.version_option(version=get_version_string())
def cli():
    """图书/漫画目录扫码助手"""


config_option = click.option('--config', '-c', type=click.Path(exists=True), help='配置文件路径')


@cli.command()
@config_option
@click.option('--log-level', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR']),
              default=None, help='覆盖配置中的日志级别')
@click.option('--no-clipboard', is_flag=True, help='不监控剪贴板')
@click.option('--no-keyboard', is_flag=True, help='不监听键盘扫码枪')
def start(config: Optional[str], log_level: Optional[str], no_clipboard: bool, no_keyboard: bool):
    """启动扫码监控"""
    app = CatalogScannerApp(config, log_level, clipboard=not no_clipboard, keyboard=not no_keyboard)
    try:
        asyncio.run(app.start())
    except KeyboardInterrupt:
        click.echo("\n已中断")


@cli.command()
@click.argument('text')
@click.option('--thirteen-as', type=click.Choice([m.value for m in ThirteenDigitAs]),
              default=ThirteenDigitAs.ISBN.value, help='13位数字按ISBN还是EAN处理')
@click.option('--issn-policy', type=click.Choice([m.value for m in IssnPolicy]),
              default=IssnPolicy.PERMISSIVE.value, help='ISSN识别策略')
def classify(text: str, thirteen_as: str, issn_policy: str):
    """对一段文本进行条码分类（不访问后端）"""
    result = classify_text(text, ThirteenDigitAs(thirteen_as), IssnPolicy(issn_policy))
    decision = decide(result)

    click.echo(f"类型: {result.kind.value}")
    if result.digits:
        click.echo(f"标识符: {result.digits}")
    if result.checksum_valid is not None:
        click.echo(f"校验位: {'有效' if result.checksum_valid else '无效'}")
    click.echo(f"动作: {decision.action.value}")


@cli.command()
@config_option
def validate_config(config: Optional[str]):
    """检查配置文件能否加载"""
    path = config or get_config_path()
    manager = ConfigManager(path)
    try:
        loaded = asyncio.run(manager.load_config())
    except Exception as e:
        click.echo(f"❌ 配置无效: {e}", err=True)
        sys.exit(1)
    finally:
        manager.cleanup()

    on_off = {True: '启用', False: '禁用'}
    click.echo(f"✅ 配置文件验证通过: {path}")
    click.echo(f"   后端地址     {loaded.backend.base_url}")
    click.echo(f"   剪贴板监控   {on_off[loaded.clipboard.enabled]}")
    click.echo(f"   键盘扫码枪   {on_off[loaded.scanner.enabled]}")
    click.echo(f"   ISSN策略     {loaded.classifier.issn_policy.value}")


@cli.command()
@config_option
def test_connection(config: Optional[str]):
    """向目录后端发送一次 ping"""
    async def probe() -> Optional[str]:
        manager = ConfigManager(config)
        try:
            backend_config = (await manager.load_config()).backend
            click.echo(f"🔌 {backend_config.base_url} ...")
            async with InvokeBridgeClient(backend_config) as client:
                await client.ping()
            return None
        except Exception as e:
            return str(e)
        finally:
            manager.cleanup()

    error = asyncio.run(probe())
    if error is not None:
        click.echo(f"❌ 连接失败: {error}", err=True)
        sys.exit(1)
    click.echo("✅ 后端可用")


@cli.command()
def create_config():
    """在默认位置写入一份默认配置"""
    path = get_config_path()
    if path.exists() and not click.confirm(f"{path} 已存在，覆盖？"):
        return

    try:
        ConfigManager(path)._create_default_config()
    except ConfigError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)

    click.echo(f"✅ 已写入默认配置: {path}")
    click.echo("至少需要确认 backend.base_url 指向目录后端")


if __name__ == "__main__":
    cli()
