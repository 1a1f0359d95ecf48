"""
filesink CLI Entry Point
"""

import sys
from typing import Optional
import click
import structlog

from filesink import __version__
from filesink.config.parser import CONFIG_KEYS, DEFAULT_CONFIG_PATH, ConfigParser
from filesink.core.engine import DEFAULT_POLL_INTERVAL, FileSinkEngine
from filesink.core.errors import FileSinkError
from filesink.core.local_fs import LocalDirectoryView
from filesink.core.models import DirectoryListing, filter_listing
from filesink.core.remote import RemoteSession
from filesink.utils.logger import setup_logging

logger = structlog.get_logger()

FILTER_HELP = '按名称过滤，逗号分隔多个词，"-" 开头表示排除（不区分大小写）'


def _print_listing(listing: DirectoryListing, pattern: Optional[str] = None):
    if pattern:
        listing = filter_listing(listing, pattern)
    for entry in listing:
        if entry.is_dir:
            click.echo(f"d {'-':>12} {entry.name}/")
        else:
            click.echo(f"f {entry.size:>12} {entry.name}")


def _fail(error: Exception):
    """报告错误并以状态码 1 退出"""
    logger.error("Command failed", error=str(error))
    click.echo(f"error: {error}", err=True)
    sys.exit(1)


@click.group()
@click.option(
    '-c', '--config', 'config_path',
    default=DEFAULT_CONFIG_PATH,
    type=click.Path(dir_okay=False),
    help=f'配置文件路径 [默认: {DEFAULT_CONFIG_PATH}]'
)
@click.option(
    '--log-level',
    default='WARNING',
    type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False),
    help='日志级别 [默认: WARNING]'
)
@click.option(
    '--log-format',
    default='text',
    type=click.Choice(['text', 'json'], case_sensitive=False),
    help='日志格式 [默认: text]'
)
@click.option(
    '--log-file',
    type=str,
    help='日志文件路径（默认输出到 stderr）'
)
@click.version_option(version=__version__, prog_name='filesink')
@click.pass_context
def main(ctx, config_path: str, log_level: str, log_format: str, log_file: str):
    """
    filesink - 监控本地目录并把修改过的文件推送到远程 SFTP 服务器

    示例:

    \b
    # 查看远程目录
    filesink ls-remote /srv/www

    \b
    # 开始监控并自动上传
    filesink watch
    """
    setup_logging(level=log_level.upper(), log_format=log_format, log_file=log_file)

    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config_path
    ctx.obj['config'] = ConfigParser().parse(config_path)


@main.command('ls-local')
@click.argument('path', required=False)
@click.option('-f', '--filter', 'pattern', help=FILTER_HELP)
@click.pass_context
def ls_local(ctx, path: str, pattern: Optional[str]):
    """列出本地目录（默认为配置中的 local_dir）"""
    config = ctx.obj['config']
    try:
        listing = LocalDirectoryView().list(path or config.local_dir)
    except FileSinkError as e:
        _fail(e)
    _print_listing(listing, pattern)


@main.command('ls-remote')
@click.argument('path', required=False)
@click.option('-f', '--filter', 'pattern', help=FILTER_HELP)
@click.pass_context
def ls_remote(ctx, path: str, pattern: Optional[str]):
    """列出远程目录（默认为配置中的 remote_dir）"""
    config = ctx.obj['config']
    session = RemoteSession()
    try:
        session.connect(config.host, config.user, config.priv_key)
        try:
            listing = session.list_directory(path or config.remote_dir)
        finally:
            session.disconnect()
    except FileSinkError as e:
        _fail(e)
    _print_listing(listing, pattern)


@main.command()
@click.argument('filename')
@click.pass_context
def upload(ctx, filename: str):
    """上传 local_dir 下的单个文件到 remote_dir"""
    config = ctx.obj['config']
    session = RemoteSession()
    try:
        session.connect(config.host, config.user, config.priv_key)
        try:
            session.upload_file(config.local_dir, config.remote_dir, filename)
        finally:
            session.disconnect()
    except FileSinkError as e:
        _fail(e)
    click.echo(f"{filename}: uploaded")


@main.command()
@click.option(
    '-i', '--interval',
    default=DEFAULT_POLL_INTERVAL,
    type=float,
    help=f'轮询间隔（秒） [默认: {DEFAULT_POLL_INTERVAL}]'
)
@click.pass_context
def watch(ctx, interval: float):
    """连接远程并监控 local_dir，修改的文件自动上传（Ctrl-C 退出）"""
    engine = FileSinkEngine(
        ctx.obj['config'],
        config_path=ctx.obj['config_path'],
        poll_interval=interval
    )

    try:
        engine.connect()
        engine.start_watching()
    except FileSinkError as e:
        engine.close()
        _fail(e)

    for line in engine.log:
        click.echo(line)

    try:
        engine.run(on_log=click.echo)
    finally:
        engine.close()

    click.echo("stopped file watcher")


@main.group('config')
def config_group():
    """查看或修改配置文件"""


@config_group.command('show')
@click.pass_context
def config_show(ctx):
    """显示当前配置"""
    config = ctx.obj['config']
    for key in CONFIG_KEYS:
        click.echo(f"{key}={getattr(config, key)}")


@config_group.command('set')
@click.argument('key', type=click.Choice(CONFIG_KEYS))
@click.argument('value')
@click.pass_context
def config_set(ctx, key: str, value: str):
    """设置一个配置项并保存"""
    config = ctx.obj['config']
    setattr(config, key, value)
    try:
        ConfigParser().save(config, ctx.obj['config_path'])
    except FileSinkError as e:
        _fail(e)
    click.echo(f"{key}={value}")


if __name__ == '__main__':
    main()
