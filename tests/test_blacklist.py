# tests/test_blacklist.py
import os
import re
import shutil
import tempfile
import unittest

from openbis_seek.exceptions import ValidationError
from openbis_seek.utils.blacklist import DATASET_CODE_PATTERN, SAMPLE_CODE_PATTERN, parse_blacklist


class TestParseBlacklist(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.blacklist_file = os.path.join(self.temp_dir, "blacklist.txt")

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def write(self, content):
        with open(self.blacklist_file, "w", encoding="utf-8") as f:
            f.write(content)

    def test_parse_codes(self):
        """测试去除空白、跳过空行"""
        self.write("20240702093837370-684137\n\n  20240702093837370-684138  \n")
        self.assertEqual(
            parse_blacklist(self.blacklist_file, DATASET_CODE_PATTERN),
            {"20240702093837370-684137", "20240702093837370-684138"},
        )

    def test_no_file(self):
        """测试未指定黑名单时返回空集合"""
        self.assertEqual(parse_blacklist(None), set())
        self.assertEqual(parse_blacklist(""), set())

    def test_missing_file(self):
        with self.assertRaises(ValidationError):
            parse_blacklist(os.path.join(self.temp_dir, "missing.txt"))

    def test_invalid_dataset_code(self):
        """测试格式不合法的数据集编码"""
        self.write("20240702093837370-684137\nQ_SAMPLE_1\n")
        with self.assertRaises(ValidationError) as ctx:
            parse_blacklist(self.blacklist_file, DATASET_CODE_PATTERN, kind="dataset")
        self.assertIn("Q_SAMPLE_1", str(ctx.exception))

    def test_unanchored_pattern_matches_whole_code(self):
        """测试配置的编码格式不带^和$时也按整个编码校验"""
        self.write("20240702093837370-1\n20240702093837370-1abc\n")
        for pattern in (r"\d{17}-\d+", re.compile(r"\d{17}-\d+")):
            with self.assertRaises(ValidationError) as ctx:
                parse_blacklist(self.blacklist_file, pattern, kind="dataset")
            self.assertIn("20240702093837370-1abc", str(ctx.exception))
            self.assertNotIn("'20240702093837370-1'", str(ctx.exception))

    def test_sample_codes(self):
        self.write("QTEST001AE\nQTEST002AF\n")
        self.assertEqual(parse_blacklist(self.blacklist_file, SAMPLE_CODE_PATTERN, kind="sample"),
                         {"QTEST001AE", "QTEST002AF"})

    def test_without_pattern(self):
        """测试不指定编码格式时不校验"""
        self.write("any code at all\n")
        self.assertEqual(parse_blacklist(self.blacklist_file), {"any code at all"})


if __name__ == '__main__':
    unittest.main()
