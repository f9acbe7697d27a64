import logging
import shutil
import tempfile
import unittest
import sys
from pathlib import Path

# Add project root to sys.path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from enhancemd.core.errors import DiagnosticKind, record
from enhancemd.core.logging_config import (
    DIAGNOSTICS_FILE_NAME, DIAGNOSTICS_LOGGER, LOG_FILE_NAME, setup_logging,
)


class TestLoggingSetup(unittest.TestCase):
    def setUp(self):
        self.tmp = Path(tempfile.mkdtemp())
        self.root_handlers = list(logging.getLogger().handlers)
        self.root_level = logging.getLogger().level

    def tearDown(self):
        for name in ('', DIAGNOSTICS_LOGGER):
            logger = logging.getLogger(name)
            for handler in list(logger.handlers):
                logger.removeHandler(handler)
                handler.close()
        root = logging.getLogger()
        for handler in self.root_handlers:
            root.addHandler(handler)
        root.setLevel(self.root_level)
        shutil.rmtree(self.tmp, ignore_errors=True)

    def test_diagnostics_go_to_both_logs(self):
        log_file = setup_logging(self.tmp, console=False)
        self.assertEqual(log_file, self.tmp / LOG_FILE_NAME)

        record(None, DiagnosticKind.LIST_PARSE_FAILED, "'items' is not valid JSON", 'items')
        logging.getLogger('enhancemd.features.images').info("Images: Loaded 1 image")
        for handler in logging.getLogger().handlers + logging.getLogger(DIAGNOSTICS_LOGGER).handlers:
            handler.flush()

        diagnostics = (self.tmp / DIAGNOSTICS_FILE_NAME).read_text(encoding='utf-8')
        self.assertIn("ListParseFailed: 'items' is not valid JSON (items)", diagnostics)
        self.assertNotIn("Loaded 1 image", diagnostics)

        main_log = log_file.read_text(encoding='utf-8')
        self.assertIn("ListParseFailed", main_log)
        self.assertIn("Loaded 1 image", main_log)

    def test_repeated_setup_does_not_duplicate_handlers(self):
        setup_logging(self.tmp, console=True)
        setup_logging(self.tmp, console=True)
        self.assertEqual(len(logging.getLogger().handlers), 2)
        self.assertEqual(len(logging.getLogger(DIAGNOSTICS_LOGGER).handlers), 1)


if __name__ == '__main__':
    unittest.main()
