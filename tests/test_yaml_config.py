# tests/test_yaml_config.py
import os
import shutil
import tempfile
import unittest
from unittest.mock import patch

import yaml

from openbis_seek.exceptions import ValidationError
from openbis_seek.utils.yaml_config import YAMLConfig
from tests.fixtures import BASE_CONFIG


class TestYAMLConfig(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.config_file = os.path.join(self.temp_dir, "config.yaml")
        self.write_config(BASE_CONFIG)

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def write_config(self, data):
        with open(self.config_file, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f)

    def test_get_dotted_path(self):
        """测试按点分隔路径读取配置项"""
        config = YAMLConfig(self.config_file)
        self.assertEqual(config.get("openbis.user"), "reader")
        self.assertEqual(config.get("scheduler.sync.interval_minutes", 60), 60)
        with self.assertRaises(ValidationError):
            config.get("seek.missing", required=True)

    def test_missing_file(self):
        with self.assertRaises(ValidationError):
            YAMLConfig(os.path.join(self.temp_dir, "missing.yaml"))

    def test_missing_core_section(self):
        """测试缺少核心节点时加载失败"""
        data = dict(BASE_CONFIG)
        del data["mappings"]
        self.write_config(data)
        with self.assertRaises(ValidationError):
            YAMLConfig(self.config_file)

    @patch.dict(os.environ, {"OPENBIS_PASSWORD": "", "SEEK_PASSWORD": ""})
    def test_sync_settings(self):
        """测试构造同步配置：去掉末尾斜杠、默认值、映射目录相对配置文件解析"""
        settings = YAMLConfig(self.config_file).get_sync_settings()
        self.assertEqual(settings.openbis_as_url, "https://openbis.example.org")
        self.assertEqual(settings.openbis_dss_url, "https://openbis.example.org")
        self.assertEqual(settings.openbis_base_url, "https://openbis.example.org/openbis/")
        self.assertEqual(settings.openbis_password, "from-file")
        self.assertEqual(settings.seek_url, "https://seek.example.org")
        self.assertEqual(settings.default_project, "1")
        self.assertEqual(settings.default_study, "2")
        self.assertEqual(settings.mappings_dir, os.path.join(os.path.abspath(self.temp_dir), "mappings"))
        self.assertEqual(settings.timeout_seconds, 30)

    @patch.dict(os.environ, {"OPENBIS_PASSWORD": "from-env", "SEEK_PASSWORD": "seek-from-env"})
    def test_passwords_from_environment(self):
        settings = YAMLConfig(self.config_file).get_sync_settings()
        self.assertEqual(settings.openbis_password, "from-env")
        self.assertEqual(settings.seek_password, "seek-from-env")

    def test_missing_required_setting(self):
        """测试必填项为空时抛出ValidationError"""
        data = yaml.safe_load(yaml.safe_dump(BASE_CONFIG))
        data["seek"]["sample_title_attribute"] = "  "
        self.write_config(data)
        with self.assertRaises(ValidationError):
            YAMLConfig(self.config_file).get_sync_settings()

    def test_database_config(self):
        """测试database节点未启用时返回None"""
        self.assertIsNone(YAMLConfig(self.config_file).get_database_config())

        data = dict(BASE_CONFIG, database={"enabled": True, "url": "sqlite://"})
        self.write_config(data)
        self.assertEqual(YAMLConfig(self.config_file).get_database_config()["url"], "sqlite://")

    def test_log_config_defaults(self):
        log_config = YAMLConfig(self.config_file).get_log_config()
        self.assertEqual(log_config["log_level"], "DEBUG")
        self.assertEqual(log_config["backup_count"], 5)


if __name__ == '__main__':
    unittest.main()
