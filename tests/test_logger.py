import logging
import tempfile
import unittest
from logging.handlers import RotatingFileHandler
from pathlib import Path
from unittest import mock

from sales_insights.config import settings
from sales_insights.utils.logger import get_logger, resolve_level, setup_logging


class ResolveLevelTest(unittest.TestCase):
    def test_names_and_numbers(self):
        self.assertEqual(resolve_level("debug"), logging.DEBUG)
        self.assertEqual(resolve_level(" Warning "), logging.WARNING)
        self.assertEqual(resolve_level(logging.ERROR), logging.ERROR)
        self.assertEqual(resolve_level("chatty"), logging.INFO)

    def test_default_comes_from_settings(self):
        with mock.patch.object(settings, "LOG_LEVEL", "ERROR"):
            self.assertEqual(resolve_level(None), logging.ERROR)


class SetupLoggingTest(unittest.TestCase):
    def setUp(self):
        root = logging.getLogger()
        saved = (list(root.handlers), root.level)
        sql = logging.getLogger("sqlalchemy.engine")
        sql_level = sql.level
        uvicorn = [(logging.getLogger(n), list(logging.getLogger(n).handlers), logging.getLogger(n).propagate)
                   for n in ("uvicorn", "uvicorn.access", "uvicorn.error")]

        def restore():
            for h in list(root.handlers):
                root.removeHandler(h)
                h.close()
            for h in saved[0]:
                root.addHandler(h)
            root.setLevel(saved[1])
            sql.setLevel(sql_level)
            for lg, handlers, propagate in uvicorn:
                lg.handlers = handlers
                lg.propagate = propagate

        self.addCleanup(restore)
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.log_file = Path(self._tmp.name) / "nested" / "insights.log"

    def test_file_and_console_handlers(self):
        setup_logging(self.log_file, level="debug")
        root = logging.getLogger()
        self.assertEqual(root.level, logging.DEBUG)
        self.assertEqual(len(root.handlers), 2)
        file_handler = next(h for h in root.handlers if isinstance(h, RotatingFileHandler))
        self.assertEqual(file_handler.maxBytes, settings.LOG_MAX_BYTES)
        self.assertEqual(logging.getLogger("uvicorn.access").handlers, root.handlers)
        self.assertFalse(logging.getLogger("uvicorn").propagate)

        get_logger("service.test").info("merged 3 customers")
        for h in root.handlers:
            h.flush()
        self.assertIn("INFO | service.test | merged 3 customers", self.log_file.read_text(encoding="utf-8"))

    def test_repeated_setup_does_not_duplicate_handlers(self):
        setup_logging(self.log_file)
        setup_logging(self.log_file)
        self.assertEqual(len(logging.getLogger().handlers), 2)

    def test_sql_logging_follows_echo(self):
        with mock.patch.object(settings, "SQLALCHEMY_ECHO", False):
            setup_logging(self.log_file, level="INFO")
        self.assertEqual(logging.getLogger("sqlalchemy.engine").level, logging.WARNING)
        with mock.patch.object(settings, "SQLALCHEMY_ECHO", True):
            setup_logging(self.log_file, level="INFO")
        self.assertEqual(logging.getLogger("sqlalchemy.engine").level, logging.INFO)


if __name__ == "__main__":
    unittest.main()
