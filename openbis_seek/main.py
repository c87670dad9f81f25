#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
openBIS -> SEEK 命令行入口

子命令：
  openbis-to-seek       同步一个openBIS实验（样本、数据集信息，可选上传文件内容）到SEEK
  sample-type-transfer  把openBIS样本类型创建到SEEK
  list-data             列出实验/样本下的数据集
  sample-types          统计样本类型层级
  schedule              按配置定时同步实验
  history               查看实验最近的传输记录

示例:
  openbis-seek openbis-to-seek /SPACE/PROJECT/EXP1 --data --blacklist skip_datasets.txt
  openbis-seek --config ./config/config.yaml sample-types --space MY_SPACE
  openbis-seek history /SPACE/PROJECT/EXP1 -n 5
"""

import argparse
import logging
import sys
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Tuple

from openbis_seek.clients.openbis_client import OpenbisClient
from openbis_seek.clients.seek_client import SeekClient
from openbis_seek.exceptions import SyncError, ValidationError
from openbis_seek.schedulers.sync_scheduler import SyncScheduler
from openbis_seek.services.report_service import ReportService
from openbis_seek.services.sample_type_service import SampleTypeService
from openbis_seek.services.sync_orchestrator import SyncOrchestrator
from openbis_seek.services.transfer_ledger import TransferLedger
from openbis_seek.translation.translator import OpenbisSeekTranslator
from openbis_seek.translation.type_mapping import TypeMappingRegistry
from openbis_seek.utils.blacklist import DATASET_CODE_PATTERN, SAMPLE_CODE_PATTERN, parse_blacklist
from openbis_seek.utils.logging_config import setup_logger
from openbis_seek.utils.yaml_config import SyncSettings, YAMLConfig

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """解析命令行参数"""
    parser = argparse.ArgumentParser(
        prog="openbis-seek",
        description="openBIS -> SEEK 元数据与数据同步工具",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument("--config", help="配置文件路径（默认: 环境变量OPENBIS_SEEK_CONFIG 或 config/config.yaml）")
    parser.add_argument("--verbose", "-v", action="store_true", help="详细输出")
    subparsers = parser.add_subparsers(dest="command", required=True)

    transfer = subparsers.add_parser("openbis-to-seek", help="同步openBIS实验到SEEK（默认更新已存在的assay）")
    transfer.add_argument("experiment", help="openBIS实验的identifier或permId")
    transfer.add_argument("--blacklist", help="不传输的数据集编码文件，每行一个")
    transfer.add_argument("--sample-blacklist", help="不传输的样本编码文件，每行一个")
    transfer.add_argument("-d", "--data", action="store_true", help="同时把文件内容上传到SEEK，否则只创建指向openBIS的链接")
    transfer.add_argument("--no-update", action="store_true", help="SEEK中已有对应assay时不修改已有信息，而是新建节点")

    sample_types = subparsers.add_parser("sample-type-transfer", help="把openBIS样本类型创建到SEEK")
    sample_types.add_argument("--ignore-existing", action="store_true", help="SEEK中已有同名样本类型时仍然创建")
    sample_types.add_argument("--sampletype-blacklist", help="不传输的样本类型编码文件，每行一个")

    list_data = subparsers.add_parser("list-data", help="列出实验或样本下的数据集")
    list_data.add_argument("object_code", nargs="?", help="实验或样本的编码/标识")
    list_data.add_argument("-s", "--space", action="append", default=[], help="限定的openBIS空间（可多次指定）")

    hierarchy = subparsers.add_parser("sample-types", help="统计样本类型之间的父子关系及出现次数")
    hierarchy.add_argument("-s", "--space", action="append", default=[], help="限定的openBIS空间（可多次指定）")
    hierarchy.add_argument("-o", "--out", help="summary输出路径（默认写入日志目录）")

    history = subparsers.add_parser("history", help="查看实验最近的传输记录（需要启用database）")
    history.add_argument("experiment", help="同步时使用的openBIS实验标识")
    history.add_argument("-n", "--limit", type=int, default=10, help="显示的记录数（默认: 10）")

    subparsers.add_parser("schedule", help="按scheduler.sync配置定时同步")

    return parser.parse_args(argv)


@contextmanager
def open_clients(settings: SyncSettings) -> Iterator[Tuple[OpenbisClient, SeekClient]]:
    """登录openBIS并创建SEEK客户端，退出时登出"""
    with OpenbisClient(settings) as openbis, SeekClient(settings) as seek:
        yield openbis, seek


def build_orchestrator_factory(config: YAMLConfig, settings: SyncSettings):
    registry = TypeMappingRegistry.from_directory(settings.mappings_dir)
    ledger = TransferLedger.from_config(config.get_database_config())

    @contextmanager
    def open_orchestrator() -> Iterator[SyncOrchestrator]:
        with open_clients(settings) as (openbis, seek):
            yield SyncOrchestrator(openbis, seek, OpenbisSeekTranslator(registry, settings), ledger)

    return open_orchestrator


def run_openbis_to_seek(args: argparse.Namespace, config: YAMLConfig) -> int:
    settings = config.get_sync_settings()
    blacklist_config = config.get_blacklist_config()
    # 黑名单在任何网络请求之前校验
    dataset_blacklist = parse_blacklist(
        args.blacklist, blacklist_config.get("dataset_code_pattern", DATASET_CODE_PATTERN), kind="dataset")
    sample_blacklist = parse_blacklist(
        args.sample_blacklist, blacklist_config.get("sample_code_pattern", SAMPLE_CODE_PATTERN), kind="sample")

    with build_orchestrator_factory(config, settings)() as orchestrator:
        result = orchestrator.run(args.experiment, dataset_blacklist, sample_blacklist, transfer_data=args.data,
                                  update_existing=not args.no_update)

    for url in result.uploaded_urls:
        logger.info(f"文件已保存：{url}")
    action = "创建" if result.mode.value == "create" else "更新"
    logger.info(f"{result.assay_endpoint} 已成功{action}")
    return 0


def run_sample_type_transfer(args: argparse.Namespace, config: YAMLConfig) -> int:
    settings = config.get_sync_settings()
    blacklist = parse_blacklist(args.sampletype_blacklist, kind="sample type")
    translator = OpenbisSeekTranslator(TypeMappingRegistry.from_directory(settings.mappings_dir), settings)

    with open_clients(settings) as (openbis, seek):
        stats = SampleTypeService(openbis, seek, translator).transfer(blacklist, args.ignore_existing)
    for created in stats["created"]:
        logger.info(f"已创建SEEK样本类型：{created}")
    return 0


def run_list_data(args: argparse.Namespace, config: YAMLConfig) -> int:
    settings = config.get_sync_settings()
    with OpenbisClient(settings) as openbis:
        summary = ReportService(openbis, config.get_log_config()["log_dir"]).list_data(args.object_code, args.space)
    for line in summary:
        print(line)
    return 0


def run_sample_types(args: argparse.Namespace, config: YAMLConfig) -> int:
    settings = config.get_sync_settings()
    with OpenbisClient(settings) as openbis:
        summary = ReportService(openbis, config.get_log_config()["log_dir"]).sample_type_hierarchy(args.space, args.out)
    for line in summary:
        print(line)
    return 0


def format_record(record: Dict[str, Any]) -> str:
    """一条传输记录的单行文本"""
    started = record["started_at"].strftime("%Y-%m-%d %H:%M:%S") if record["started_at"] else "-"
    line = (f"#{record['id']} {started} {record['status']} {record['mode'] or '-'} "
            f"{record['assay_endpoint'] or '-'} 上传文件{record['uploaded_assets']}个")
    if record["error_message"]:
        line += f" 错误：{record['error_message']}"
    return line


def run_history(args: argparse.Namespace, config: YAMLConfig) -> int:
    ledger = TransferLedger.from_config(config.get_database_config())
    if ledger is None:
        raise ValidationError("未启用database配置，没有传输记录可查询")
    try:
        records = ledger.history(args.experiment, args.limit)
    finally:
        ledger.engine.dispose()

    if not records:
        print(f"实验 {args.experiment} 没有传输记录")
    for record in records:
        print(format_record(record))
    return 0


def run_schedule(args: argparse.Namespace, config: YAMLConfig) -> int:
    settings = config.get_sync_settings()
    scheduler = SyncScheduler(config, build_orchestrator_factory(config, settings))
    scheduler.run_forever()
    return 0


COMMANDS = {
    "openbis-to-seek": run_openbis_to_seek,
    "sample-type-transfer": run_sample_type_transfer,
    "list-data": run_list_data,
    "sample-types": run_sample_types,
    "schedule": run_schedule,
    "history": run_history,
}


def main(argv: Optional[List[str]] = None) -> int:
    """主函数"""
    args = parse_args(argv)

    try:
        config = YAMLConfig(args.config)
    except SyncError as e:
        logging.basicConfig(level=logging.ERROR)
        logging.critical(f"配置加载失败: {str(e)}")
        return 1

    setup_logger("openbis_seek", config.get_log_config())
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        return COMMANDS[args.command](args, config)
    except SyncError as e:
        logger.error(f"{args.command} 执行失败: {str(e)}", exc_info=args.verbose)
        return 1
    except Exception as e:
        logger.critical(f"{args.command} 执行过程中发生未预期的异常: {str(e)}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
