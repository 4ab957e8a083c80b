#!/usr/bin/env python3
"""
Tests for the response history and the state stores.
"""

import json
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from devflow import (
    HISTORY_KEY,
    HistoryStore,
    JsonFileStore,
    MemoryStore,
    ResponseHistoryEntry,
)


class TestHistoryStore(unittest.TestCase):
    """Tests for HistoryStore."""

    def test_load_without_state_is_empty(self):
        history = HistoryStore(MemoryStore())
        self.assertEqual(history.load(), [])
        self.assertEqual(history.entries, [])

    def test_append_keeps_last_two_entries(self):
        history = HistoryStore(MemoryStore())
        e1 = ResponseHistoryEntry(1, "E1")
        e2 = ResponseHistoryEntry(2, "E2")
        e3 = ResponseHistoryEntry(3, "E3")

        self.assertEqual(history.append(e1), [e1])
        self.assertEqual(history.append(e2), [e1, e2])
        self.assertEqual(history.append(e3), [e2, e3])
        self.assertEqual(history.entries, [e2, e3])

    def test_append_never_exceeds_limit(self):
        history = HistoryStore(MemoryStore())
        for i in range(10):
            entries = history.append(ResponseHistoryEntry(i, f"response {i}"))
            self.assertLessEqual(len(entries), 2)

    def test_clear_always_empties(self):
        history = HistoryStore(MemoryStore())
        self.assertEqual(history.clear(), [])

        history.append(ResponseHistoryEntry(1, "A"))
        history.append(ResponseHistoryEntry(2, "B"))
        self.assertEqual(history.clear(), [])
        self.assertEqual(history.entries, [])

    def test_record_persists_entry(self):
        store = MemoryStore()
        history = HistoryStore(store)

        with patch("devflow.time.time", return_value=1700000000.5):
            history.record("npm init -y")

        self.assertEqual(store.load(HISTORY_KEY), [{"timestamp": 1700000000500, "response": "npm init -y"}])

    def test_reset_persists_empty_log(self):
        store = MemoryStore({HISTORY_KEY: [{"timestamp": 1, "response": "A"}]})
        history = HistoryStore(store)
        self.assertEqual(len(history.entries), 1)

        history.reset()
        self.assertEqual(store.load(HISTORY_KEY), [])

    def test_load_is_soft_on_bad_state(self):
        self.assertEqual(HistoryStore(MemoryStore({HISTORY_KEY: "garbage"})).entries, [])

        store = MemoryStore({HISTORY_KEY: [
            {"timestamp": 1, "response": "A"},
            "not an entry",
            {"timestamp": 2},
            {"response": "B"},
        ]})
        entries = HistoryStore(store).entries
        self.assertEqual(entries, [ResponseHistoryEntry(1, "A"), ResponseHistoryEntry(0, "B")])

    def test_load_trims_oversized_state(self):
        store = MemoryStore({HISTORY_KEY: [{"timestamp": i, "response": str(i)} for i in range(5)]})
        self.assertEqual([e.response for e in HistoryStore(store).entries], ["3", "4"])


class TestJsonFileStore(unittest.TestCase):
    """Tests for the JSON state file."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.path = Path(self.tmp.name) / "state" / "devflow.json"

    def tearDown(self):
        self.tmp.cleanup()

    def test_missing_file_reads_default(self):
        store = JsonFileStore(self.path)
        self.assertIsNone(store.load("openaiApiKey"))
        self.assertEqual(store.load(HISTORY_KEY, []), [])

    def test_save_and_load_across_instances(self):
        JsonFileStore(self.path).save("openaiApiKey", "sk-test")
        JsonFileStore(self.path).save(HISTORY_KEY, [{"timestamp": 1, "response": "A"}])

        store = JsonFileStore(self.path)
        self.assertEqual(store.load("openaiApiKey"), "sk-test")
        self.assertEqual(store.load(HISTORY_KEY), [{"timestamp": 1, "response": "A"}])

        with open(self.path) as f:
            self.assertEqual(set(json.load(f)), {"openaiApiKey", HISTORY_KEY})

    def test_corrupt_file_reads_as_empty(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_text("{not json")

        store = JsonFileStore(self.path)
        self.assertIsNone(store.load("openaiApiKey"))

        store.save("openaiApiKey", "sk-new")
        self.assertEqual(store.load("openaiApiKey"), "sk-new")

    def test_undecodable_file_reads_as_empty(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_bytes(b'{"responseHistory": ["\xff\xfe"]}')

        self.assertEqual(HistoryStore(JsonFileStore(self.path)).entries, [])

        store = JsonFileStore(self.path)
        HistoryStore(store).reset()
        self.assertEqual(store.load(HISTORY_KEY), [])

    def test_history_survives_restart(self):
        HistoryStore(JsonFileStore(self.path)).record("first")
        HistoryStore(JsonFileStore(self.path)).record("second")
        HistoryStore(JsonFileStore(self.path)).record("third")

        entries = HistoryStore(JsonFileStore(self.path)).entries
        self.assertEqual([e.response for e in entries], ["second", "third"])


if __name__ == "__main__":
    unittest.main()
