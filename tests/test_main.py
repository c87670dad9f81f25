# tests/test_main.py
import logging
import os
import shutil
import tempfile
import unittest
from unittest.mock import MagicMock, patch

import yaml

from openbis_seek.clients.openbis_client import OpenbisClient
from openbis_seek.exceptions import AmbiguousMatchError, TransportError
from openbis_seek.main import main, open_clients, parse_args
from openbis_seek.services.transfer_ledger import TransferLedger
from tests.fixtures import BASE_CONFIG, EXPERIMENT_PERM_ID, make_settings


class TestParseArgs(unittest.TestCase):
    def test_openbis_to_seek(self):
        args = parse_args(["openbis-to-seek", "/SPACE/PROJ/EXP1", "--data", "--blacklist", "skip.txt"])
        self.assertEqual(args.command, "openbis-to-seek")
        self.assertEqual(args.experiment, "/SPACE/PROJ/EXP1")
        self.assertTrue(args.data)
        self.assertEqual(args.blacklist, "skip.txt")
        self.assertIsNone(args.sample_blacklist)

    def test_repeated_space(self):
        args = parse_args(["sample-types", "-s", "A", "-s", "B"])
        self.assertEqual(args.space, ["A", "B"])

    def test_no_update_flag(self):
        self.assertFalse(parse_args(["openbis-to-seek", "EXP1"]).no_update)
        self.assertTrue(parse_args(["openbis-to-seek", "EXP1", "--no-update"]).no_update)

    def test_history_args(self):
        args = parse_args(["history", "/SPACE/PROJ/EXP1", "-n", "3"])
        self.assertEqual(args.experiment, "/SPACE/PROJ/EXP1")
        self.assertEqual(args.limit, 3)
        self.assertEqual(parse_args(["history", "EXP1"]).limit, 10)

    def test_command_required(self):
        with self.assertRaises(SystemExit):
            parse_args([])


class TestOpenClients(unittest.TestCase):
    @patch.object(OpenbisClient, "logout", side_effect=TransportError("logout failed"))
    @patch.object(OpenbisClient, "login", return_value="reader-token")
    def test_logout_error_keeps_original_error(self, mock_login, mock_logout):
        """测试退出时登出失败不会覆盖同步过程中的异常"""
        with self.assertRaises(AmbiguousMatchError) as ctx:
            with open_clients(make_settings()):
                raise AmbiguousMatchError("P1", ["1", "2"])

        self.assertEqual(ctx.exception.matches, ["1", "2"])
        mock_login.assert_called_once()
        mock_logout.assert_called_once()

    @patch.object(OpenbisClient, "logout")
    @patch.object(OpenbisClient, "login", return_value="reader-token")
    def test_logout_on_success(self, mock_login, mock_logout):
        with open_clients(make_settings()) as (openbis, seek):
            self.assertIsInstance(openbis, OpenbisClient)
        mock_logout.assert_called_once()


class TestMain(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.config_file = os.path.join(self.temp_dir, "config.yaml")
        data = yaml.safe_load(yaml.safe_dump(BASE_CONFIG))
        data["logging"]["log_dir"] = os.path.join(self.temp_dir, "logs")
        with open(self.config_file, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f)

    def tearDown(self):
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
            handler.close()
        shutil.rmtree(self.temp_dir)

    def test_missing_config(self):
        """测试配置文件不存在时返回1"""
        self.assertEqual(main(["--config", os.path.join(self.temp_dir, "missing.yaml"), "sample-types"]), 1)

    @patch("openbis_seek.main.OpenbisClient")
    def test_invalid_blacklist_fails_before_network(self, mock_client):
        """测试黑名单格式错误时在任何网络请求之前失败"""
        blacklist = os.path.join(self.temp_dir, "skip.txt")
        with open(blacklist, "w", encoding="utf-8") as f:
            f.write("not-a-dataset-code\n")

        code = main(["--config", self.config_file, "openbis-to-seek", "/SPACE/PROJ/EXP1", "--blacklist", blacklist])

        self.assertEqual(code, 1)
        mock_client.assert_not_called()

    @patch("openbis_seek.main.ReportService")
    @patch("openbis_seek.main.OpenbisClient")
    def test_list_data(self, mock_client, mock_report):
        """测试list-data命令使用日志目录保存summary"""
        openbis = MagicMock()
        mock_client.return_value.__enter__.return_value = openbis
        mock_report.return_value.list_data.return_value = ["Found 1 datasets for experiment EXP1:"]

        self.assertEqual(main(["--config", self.config_file, "list-data", "EXP1", "-s", "SPACE"]), 0)

        mock_report.assert_called_once_with(openbis, os.path.join(self.temp_dir, "logs"))
        mock_report.return_value.list_data.assert_called_once_with("EXP1", ["SPACE"])

    @patch("openbis_seek.main.OpenbisClient")
    def test_unexpected_error(self, mock_client):
        mock_client.return_value.__enter__.side_effect = RuntimeError("boom")
        self.assertEqual(main(["--config", self.config_file, "sample-types"]), 1)

    def _write_config(self, **sections):
        with open(self.config_file, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        data.update(sections)
        with open(self.config_file, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f)

    @patch("openbis_seek.main.build_orchestrator_factory")
    def test_no_update_passed_to_orchestrator(self, mock_factory):
        """测试--no-update传给编排器"""
        orchestrator = MagicMock()
        orchestrator.run.return_value.uploaded_urls = []
        orchestrator.run.return_value.mode.value = "create"
        mock_factory.return_value.return_value.__enter__.return_value = orchestrator

        code = main(["--config", self.config_file, "openbis-to-seek", "/SPACE/PROJ/EXP1", "--no-update"])

        self.assertEqual(code, 0)
        self.assertFalse(orchestrator.run.call_args[1]["update_existing"])

    @patch("builtins.print")
    def test_history(self, mock_print):
        """测试history命令输出最近的传输记录"""
        db_config = {"enabled": True, "url": f"sqlite:///{os.path.join(self.temp_dir, 'ledger.db')}"}
        self._write_config(database=db_config)
        ledger = TransferLedger.from_config(db_config)
        first = ledger.start("/SPACE/PROJ/EXP1", transfer_data=False)
        ledger.fail(first, TransportError("SEEK请求失败"))
        second = ledger.start("/SPACE/PROJ/EXP1", transfer_data=True)
        ledger.finish(second, EXPERIMENT_PERM_ID, "update", "https://seek.example.org/assays/5", 2)
        ledger.engine.dispose()

        code = main(["--config", self.config_file, "history", "/SPACE/PROJ/EXP1", "-n", "5"])

        self.assertEqual(code, 0)
        lines = [c[0][0] for c in mock_print.call_args_list]
        self.assertEqual(len(lines), 2)
        self.assertIn("success update https://seek.example.org/assays/5 上传文件2个", lines[0])
        self.assertIn("failed", lines[1])
        self.assertIn("TransportError: SEEK请求失败", lines[1])

    @patch("builtins.print")
    def test_history_without_records(self, mock_print):
        db_config = {"enabled": True, "url": f"sqlite:///{os.path.join(self.temp_dir, 'ledger.db')}"}
        self._write_config(database=db_config)
        self.assertEqual(main(["--config", self.config_file, "history", "EXP9"]), 0)
        mock_print.assert_called_once_with("实验 EXP9 没有传输记录")

    def test_history_without_database(self):
        """测试未启用database时history命令返回1"""
        self.assertEqual(main(["--config", self.config_file, "history", "/SPACE/PROJ/EXP1"]), 1)


if __name__ == '__main__':
    unittest.main()
