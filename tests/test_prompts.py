#!/usr/bin/env python3
"""
Tests for prompt composition, command extraction and intent detection.
"""

import sys
import unittest
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from devflow import (
    EXTENSION_SUGGESTION_TEMPLATE,
    SETUP_COMMANDS_TEMPLATE,
    SHORTCUTS_REQUEST,
    Intent,
    ResponseHistoryEntry,
    build_install_command,
    compose_prompt,
    detect_intent,
    extract_commands,
    is_escape_signal,
    render_history,
)


class TestComposePrompt(unittest.TestCase):
    """Tests for compose_prompt."""

    def test_history_rendered_in_order(self):
        history = [ResponseHistoryEntry(1, "A"), ResponseHistoryEntry(2, "B")]
        self.assertEqual(render_history(history), "A\nB")

        prompt = compose_prompt("Do {request}.", "it", history)
        self.assertEqual(prompt, "Do it.\n\nPrevious responses:\nA\nB")

    def test_timestamps_not_rendered(self):
        history = [ResponseHistoryEntry(1699999999999, "A")]
        self.assertNotIn("1699999999999", compose_prompt("{request}", "x", history))

    def test_marker_present_with_empty_history(self):
        prompt = compose_prompt(SETUP_COMMANDS_TEMPLATE, "set up a node project", [])
        self.assertIn("Previous responses:", prompt)
        self.assertTrue(prompt.endswith("\n\nPrevious responses:\n"))

    def test_setup_template_quotes_request(self):
        prompt = compose_prompt(SETUP_COMMANDS_TEMPLATE, "set up a node project", [])
        self.assertIn('"set up a node project"', prompt)
        self.assertIn("THERE SHOULD NOT BE ANY OTHER CHARACTER BEFORE COMMANDS IN EACH LINE", prompt)

    def test_suggestion_template(self):
        prompt = compose_prompt(EXTENSION_SUGGESTION_TEMPLATE, SHORTCUTS_REQUEST, [])
        self.assertTrue(prompt.startswith("Understand the user prompt and provide name suggestions"))
        self.assertIn("list suitable vs code shortcuts", prompt)

    def test_braces_in_request_are_kept(self):
        prompt = compose_prompt("{request}", "echo {a,b}", [])
        self.assertTrue(prompt.startswith("echo {a,b}"))


class TestExtractCommands(unittest.TestCase):
    """Tests for extract_commands."""

    def test_strips_markers_and_blank_lines(self):
        self.assertEqual(
            extract_commands("1. echo hi\n2) echo bye\n\n  \n3.ls"),
            "echo hi\necho bye\nls",
        )

    def test_idempotent(self):
        response = "1. mkdir app\n2. cd app\n\n3) npm init -y\n   4.  npm install express"
        once = extract_commands(response)
        self.assertEqual(once, "mkdir app\ncd app\nnpm init -y\nnpm install express")
        self.assertEqual(extract_commands(once), once)

    def test_unnumbered_lines_untouched(self):
        self.assertEqual(extract_commands("pip install flask\n  python app.py"),
                         "pip install flask\n  python app.py")

    def test_only_first_marker_stripped(self):
        self.assertEqual(extract_commands("1. 2. echo"), "2. echo")

    def test_empty_response(self):
        self.assertEqual(extract_commands(""), "")
        self.assertEqual(extract_commands("\n \n1.\n"), "")


class TestIntent(unittest.TestCase):
    """Tests for intent detection and the shortcut flow helpers."""

    def test_detects_shortcuts(self):
        for text in ("Shortcuts for git", "show me short cuts", "any SHORTCUT`", "short-cut list"):
            self.assertEqual(detect_intent(text), Intent.SHORTCUTS, text)

    def test_defaults_to_setup(self):
        self.assertEqual(detect_intent("set up a node project"), Intent.SETUP_COMMANDS)

    def test_escape_signal(self):
        self.assertTrue(is_escape_signal("ESC"))
        self.assertTrue(is_escape_signal(" escape "))
        self.assertFalse(is_escape_signal("ms-python.python"))

    def test_install_command_quotes_identifier(self):
        self.assertEqual(build_install_command("ms-python.python"),
                         "code --install-extension ms-python.python")
        self.assertEqual(build_install_command("x; rm -rf ~"),
                         "code --install-extension 'x; rm -rf ~'")


if __name__ == "__main__":
    unittest.main()
