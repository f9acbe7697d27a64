import json
import shutil
import tempfile
import unittest
import sys
from pathlib import Path

# Add project root to sys.path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from enhancemd.core import config
from enhancemd.core.store import JsonFileStore, MemoryStore


class TestStores(unittest.TestCase):
    def setUp(self):
        self.tmp = Path(tempfile.mkdtemp())

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def test_memory_store(self):
        store = MemoryStore({'a': '1'})
        self.assertEqual(store.get('a'), '1')
        store.set('b', '2')
        store.delete('a')
        store.delete('missing')
        self.assertIsNone(store.get('a'))
        self.assertEqual(store.get('b'), '2')

    def test_json_file_store(self):
        path = self.tmp / 'nested' / 'store.json'
        store = JsonFileStore(path)
        self.assertIsNone(store.get('k'))
        store.set('k', 'v')
        self.assertEqual(json.loads(path.read_text(encoding='utf-8')), {'k': 'v'})

        # A second instance sees the first one's writes
        self.assertEqual(JsonFileStore(path).get('k'), 'v')
        store.delete('k')
        self.assertIsNone(JsonFileStore(path).get('k'))

    def test_json_file_store_ignores_corrupt_file(self):
        path = self.tmp / 'store.json'
        path.write_text('{not json', encoding='utf-8')
        self.assertIsNone(JsonFileStore(path).get('k'))


class TestConfig(unittest.TestCase):
    def setUp(self):
        self.tmp = Path(tempfile.mkdtemp())

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def test_defaults_when_missing(self):
        loaded = config.load_config(self.tmp / 'absent.json')
        self.assertEqual(loaded, config.default_config())

    def test_saved_values_override_defaults(self):
        path = self.tmp / 'config.json'
        config.save_config({'debounce_ms': 50}, path)
        loaded = config.load_config(path)
        self.assertEqual(loaded['debounce_ms'], 50)
        self.assertEqual(loaded['min_batch_seconds'], config.MIN_BATCH_SECONDS)


if __name__ == '__main__':
    unittest.main()
