#!/usr/bin/env python3
"""
DevFlow - AI-assisted project setup from the terminal

This module takes a free-text request, asks an OpenAI completion model for the
shell commands that fulfil it, shows the response and pipes the commands into a
shell session. The last two responses are kept as conversational context for
the next request.
"""

import os
import re
import json
import glob
import shlex
import tempfile
import subprocess
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Dict, Any, Optional
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.prompt import Prompt
from rich.table import Table
from rich.text import Text
from rich.tree import Tree
import openai
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Initialize Rich console for pretty output
console = Console()

# Constants
STATE_FILE = Path.home() / ".devflow_state.json"
LOGS_FOLDER = Path.home() / ".devflow_logs"
MAX_LOG_FILES = 10  # Maximum number of log files to keep
DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-3.5-turbo-instruct"
MAX_TOKENS = 400
MAX_HISTORY_ENTRIES = 2
TERMINAL_NAME = "DevFlow Running"

# Keys in the persisted state
API_KEY_KEY = "openaiApiKey"
HISTORY_KEY = "responseHistory"

HISTORY_SEPARATOR = "\n\nPrevious responses:\n"

EXTENSION_SUGGESTION_TEMPLATE = (
    "Understand the user prompt and provide name suggestions for vs code extensions. {request}"
)
SETUP_COMMANDS_TEMPLATE = (
    "Understand the user prompt and give ONLY terminal package installation codes. "
    "The following is the user prompt. You should give the complete code a noob needs to "
    "execute line by line,THERE SHOULD NOT BE ANY OTHER CHARACTER BEFORE COMMANDS IN EACH LINE:  "
    "\"{request}\""
)
SHORTCUTS_REQUEST = " list suitable vs code shortcuts for the user prompt"

ORDINAL_MARKER = re.compile(r'^\s*\d+[.)]\s*')
SHORTCUT_PATTERN = re.compile(r'short[\s-]?cuts?', re.IGNORECASE)
ESCAPE_SIGNALS = ("esc", "escape")


class DevFlowError(Exception):
    """Base class for errors that abort the current DevFlow invocation."""


class MissingApiKey(DevFlowError):
    """The user declined to supply an OpenAI API key."""


class NoUserInput(DevFlowError):
    """The user declined to enter a request."""


class NetworkError(DevFlowError):
    """The completion request failed in transport or returned an HTTP error."""


class MalformedResponseError(DevFlowError):
    """The completion response did not have the expected shape."""


class ExecutionError(DevFlowError):
    """The shell could not be started."""


class FileLogger:
    """Handles session logging using plain text files."""

    def __init__(self, logs_folder=LOGS_FOLDER, max_log_files=MAX_LOG_FILES):
        """Initialize the file logger."""
        self.logs_folder = Path(logs_folder)
        self.max_log_files = max_log_files

        # Create the logs directory
        try:
            os.makedirs(self.logs_folder, exist_ok=True)
        except OSError as e:
            console.print(f"[yellow]Could not create log directory {self.logs_folder}: {e}[/yellow]")
            # Fallback to temp directory if home directory fails
            self.logs_folder = Path(tempfile.gettempdir()) / ".devflow_logs"
            os.makedirs(self.logs_folder, exist_ok=True)

        # Generate a unique ID for this session
        self.session_id = f"session_{int(datetime.now().timestamp())}"
        self.log_file = self.logs_folder / f"{self.session_id}.log"

        # Initialize the log file with a header
        with open(self.log_file, 'w') as f:
            f.write("DevFlow Session Log\n")
            f.write(f"Started: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n")
            f.write(f"Session ID: {self.session_id}\n")
            f.write("-" * 80 + "\n\n")

        self._cleanup_old_logs()

    def _cleanup_old_logs(self):
        """Remove old log files, keeping only the most recent ones."""
        log_files = sorted(glob.glob(str(self.logs_folder / "session_*.log")), key=os.path.getmtime, reverse=True)

        for old_file in log_files[self.max_log_files:]:
            try:
                os.remove(old_file)
            except OSError as e:
                console.print(f"[dim]Could not remove old log file {old_file}: {e}[/dim]")

    def _write(self, label: str, text: str, block: bool = False):
        with open(self.log_file, 'a') as f:
            stamp = datetime.now().strftime('%H:%M:%S')
            if block:
                f.write(f"\n{label} [{stamp}]:\n")
                for line in text.split('\n'):
                    f.write(f"    {line}\n")
            else:
                f.write(f"\n{label} [{stamp}]: {text}\n")

    def log_user_query(self, query: str):
        """Log a user request to the session file."""
        self._write("USER", query)

    def log_prompt(self, prompt: str):
        """Log the full prompt sent to the completion API."""
        self._write("PROMPT", prompt, block=True)

    def log_response(self, response: str):
        """Log the raw text returned by the completion API."""
        self._write("RESPONSE", response, block=True)

    def log_command(self, command: str):
        """Log the command text handed to the shell."""
        self._write("COMMAND", command, block=True)

    def log_system_message(self, message: str):
        """Log a system message to the session file."""
        self._write("SYSTEM", message)

    def get_conversation_history(self) -> str:
        """
        Get the entire session log.

        Returns:
            str: The log file contents
        """
        try:
            with open(self.log_file, 'r') as f:
                return f.read()
        except OSError as e:
            return f"Error reading log file: {str(e)}"


class MemoryStore:
    """Key-value store kept in process memory."""

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        self.data = dict(data or {})

    def load(self, key: str, default=None):
        return self.data.get(key, default)

    def save(self, key: str, value):
        self.data[key] = value


class JsonFileStore:
    """
    Key-value store persisted as a single JSON document.

    A missing or unreadable file reads as an empty store. Every save rewrites
    the whole document.
    """

    def __init__(self, path=STATE_FILE):
        self.path = Path(path)

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (ValueError, OSError):
            # Covers invalid JSON and bytes that are not UTF-8
            return {}

        return data if isinstance(data, dict) else {}

    def load(self, key: str, default=None):
        return self._read().get(key, default)

    def save(self, key: str, value):
        data = self._read()
        data[key] = value

        # Ensure the directory exists
        self.path.parent.mkdir(parents=True, exist_ok=True)

        with open(self.path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2)

        # The state holds the API key
        os.chmod(self.path, 0o600)


@dataclass
class ResponseHistoryEntry:
    timestamp: int
    response: str

    @classmethod
    def now(cls, response: str) -> "ResponseHistoryEntry":
        """Create an entry stamped with the current time in milliseconds."""
        return cls(timestamp=int(time.time() * 1000), response=response)

    def to_dict(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp, "response": self.response}


class HistoryStore:
    """Bounded log of past model responses, oldest first."""

    def __init__(self, store, limit: int = MAX_HISTORY_ENTRIES):
        self.store = store
        self.limit = limit
        self.entries = self.load()

    def load(self) -> List[ResponseHistoryEntry]:
        """
        Load the persisted history.

        Never raises: anything that is not a list of entries is treated as
        an empty history, and malformed entries are skipped.
        """
        raw = self.store.load(HISTORY_KEY, [])
        if not isinstance(raw, list):
            return []

        entries = []
        for item in raw:
            if not isinstance(item, dict) or not isinstance(item.get("response"), str):
                continue
            timestamp = item.get("timestamp")
            if not isinstance(timestamp, int):
                timestamp = 0
            entries.append(ResponseHistoryEntry(timestamp=timestamp, response=item["response"]))

        return entries[-self.limit:]

    def append(self, entry: ResponseHistoryEntry) -> List[ResponseHistoryEntry]:
        """Add an entry and evict the oldest ones beyond the limit."""
        self.entries = (self.entries + [entry])[-self.limit:]
        return list(self.entries)

    def clear(self) -> List[ResponseHistoryEntry]:
        self.entries = []
        return []

    def save(self):
        self.store.save(HISTORY_KEY, [entry.to_dict() for entry in self.entries])

    def record(self, response: str) -> List[ResponseHistoryEntry]:
        """Append a response stamped now and persist the log."""
        entries = self.append(ResponseHistoryEntry.now(response))
        self.save()
        return entries

    def reset(self) -> List[ResponseHistoryEntry]:
        """Clear the log and persist it."""
        entries = self.clear()
        self.save()
        return entries


def render_history(history: List[ResponseHistoryEntry]) -> str:
    """Join past responses with newlines, oldest first."""
    return "\n".join(entry.response for entry in history)


def compose_prompt(template: str, raw_user_text: str, history: List[ResponseHistoryEntry]) -> str:
    """
    Build the prompt sent to the completion API.

    Args:
        template: Task template with a {request} placeholder
        raw_user_text: The user's request as typed
        history: Past responses used as context

    Returns:
        str: The rendered template followed by the previous responses section
    """
    prompt = template.format(request=raw_user_text)
    return f"{prompt}{HISTORY_SEPARATOR}{render_history(history)}"


def extract_commands(response_text: str) -> str:
    """
    Turn a model response into a block of commands ready for the shell.

    Leading list numbering such as "1. " or "2)" is removed from each line and
    blank lines are dropped.
    """
    lines = response_text.split('\n')
    command_lines = [ORDINAL_MARKER.sub('', line, count=1) for line in lines]
    return '\n'.join(line for line in command_lines if line.strip())


class CompletionClient:
    """Thin wrapper around the OpenAI completions endpoint."""

    def __init__(self, model: str = DEFAULT_MODEL, base_url: str = DEFAULT_BASE_URL,
                 max_tokens: int = MAX_TOKENS, client_factory=None):
        """
        Initialize the completion client.

        Args:
            model: Completion model id
            base_url: API base URL, requests go to {base_url}/completions
            max_tokens: Maximum tokens to generate
            client_factory: Callable taking an API key and returning an OpenAI client
        """
        self.model = model
        self.base_url = base_url
        self.max_tokens = max_tokens
        self.client_factory = client_factory or self._create_client

    def _create_client(self, api_key: str):
        return openai.OpenAI(api_key=api_key, base_url=self.base_url, max_retries=0)

    def complete(self, api_key: str, prompt: str) -> str:
        """
        Send a prompt and return the generated text.

        Args:
            api_key: OpenAI API key used as bearer token
            prompt: Full prompt text

        Returns:
            str: The text of every choice, trimmed and joined with newlines

        Raises:
            NetworkError: The request failed or the API answered with an error status
            MalformedResponseError: The response body has no list of choices with text
        """
        try:
            client = self.client_factory(api_key)
            raw_response = client.completions.with_raw_response.create(
                model=self.model,
                prompt=prompt,
                max_tokens=self.max_tokens,
            )
        except openai.OpenAIError as e:
            raise NetworkError(f"Failed to generate response from OpenAI API: {e}") from e

        try:
            body = raw_response.http_response.json()
        except ValueError as e:
            raise MalformedResponseError(f"OpenAI API response is not valid JSON: {e}") from e

        return self._join_choices(body)

    @staticmethod
    def _join_choices(body) -> str:
        choices = body.get("choices") if isinstance(body, dict) else None
        if not isinstance(choices, list):
            raise MalformedResponseError("Unexpected OpenAI API response format")

        texts = []
        for choice in choices:
            text = choice.get("text") if isinstance(choice, dict) else None
            if not isinstance(text, str):
                raise MalformedResponseError("Unexpected OpenAI API response format: choice without text")
            texts.append(text.strip())

        return "\n".join(texts)


class RichPrompter:
    """Asks the user for input on the console."""

    def ask(self, message: str, password: bool = False) -> Optional[str]:
        """Return the stripped answer, or None if the user entered nothing or cancelled."""
        try:
            answer = Prompt.ask(f"[bold green]{message}[/bold green]", password=password,
                                default="", show_default=False)
        except (KeyboardInterrupt, EOFError):
            console.print()
            return None

        answer = answer.strip()
        return answer or None


class OutputDisplay:
    """Shows responses in a panel, like an output channel."""

    title = "API Response"

    def __init__(self, output_console: Console = console):
        self.console = output_console

    def present(self, text: str):
        self.console.print(Panel(Text(text), title=f"[bold blue]{self.title}[/bold blue]", expand=False))

    def info(self, message: str):
        self.console.print(message, style="bold green", markup=False)

    def warning(self, message: str):
        self.console.print(message, style="bold yellow", markup=False)

    def error(self, message: str):
        self.console.print(message, style="bold red", markup=False)


class PackageExplorerDisplay(OutputDisplay):
    """Shows the latest response as an item of a package explorer tree."""

    title = "Package Explorer"

    def __init__(self, output_console: Console = console):
        super().__init__(output_console)
        self.data: List[str] = []

    def update_data(self, output: str):
        # Only the latest output is kept
        self.data = [output]

    def present(self, text: str):
        self.update_data(text)
        tree = Tree(Text(self.title, style="bold blue"))
        for item in self.data:
            tree.add(Text(item))
        self.console.print(tree)


class TerminalExecutor:
    """
    Hands command text to a named shell session.

    The text is written to the shell's standard input as if typed in a
    terminal. Exit status and output are left to the shell and the user.
    """

    def __init__(self, name: str = TERMINAL_NAME, shell: Optional[str] = None,
                 output_console: Console = console):
        self.name = name
        self.shell = shell or os.environ.get("SHELL", "/bin/sh")
        self.console = output_console

    def execute(self, command_text: str):
        self.console.rule(f"[bold blue]{self.name}[/bold blue]")
        self.console.print(Syntax(command_text, "bash", theme="monokai", line_numbers=False))

        try:
            process = subprocess.Popen([self.shell], stdin=subprocess.PIPE, text=True)
        except OSError as e:
            raise ExecutionError(f"Could not start shell {self.shell}: {e}") from e
        process.communicate(input=command_text + "\n")

        self.console.rule()


class Intent(Enum):
    SETUP_COMMANDS = "setup"
    SHORTCUTS = "shortcuts"


def detect_intent(raw_text: str) -> Intent:
    """Pick the flow for a request: shortcut suggestions if it mentions shortcuts."""
    if SHORTCUT_PATTERN.search(raw_text):
        return Intent.SHORTCUTS
    return Intent.SETUP_COMMANDS


def is_escape_signal(answer: str) -> bool:
    return answer.strip().lower() in ESCAPE_SIGNALS


def build_install_command(extension_id: str) -> str:
    return f"code --install-extension {shlex.quote(extension_id)}"


@dataclass
class FlowResult:
    intent: Intent
    response: str
    command: Optional[str] = None


class DevFlowSession:
    """A DevFlow session: API key, response history and the two request flows."""

    def __init__(self, store, prompter=None, display=None, executor=None, client=None,
                 logger=None, debug: bool = False):
        """
        Initialize the session.

        Args:
            store: Key-value store with load/save, holds the API key and history
            prompter: Asks the user for input, defaults to RichPrompter
            display: Shows responses and notifications, defaults to OutputDisplay
            executor: Runs command text in a shell, defaults to TerminalExecutor
            client: CompletionClient instance
            logger: FileLogger instance, if None a default one will be created
            debug: Enable debug output
        """
        self.store = store
        self.prompter = prompter or RichPrompter()
        self.display = display or OutputDisplay()
        self.executor = executor or TerminalExecutor()
        self.client = client or CompletionClient()
        self.logger = logger or FileLogger()
        self.debug = debug
        self.history = HistoryStore(store)

    def log_debug(self, message: str):
        """Log a debug message if debug mode is enabled."""
        if self.debug:
            timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
            console.print(f"[dim][{timestamp}] DEBUG: {message}[/dim]", highlight=False)

    def resolve_api_key(self) -> str:
        """
        Find the OpenAI API key: stored state, then OPENAI_API_KEY, then ask.

        A key entered at the prompt is saved for future sessions.

        Raises:
            MissingApiKey: The user did not enter a key
        """
        api_key = self.store.load(API_KEY_KEY)
        if api_key:
            return api_key

        api_key = os.getenv("OPENAI_API_KEY")
        if api_key:
            self.log_debug("Using OPENAI_API_KEY from the environment")
            return api_key

        api_key = self.prompter.ask("Enter your OpenAI API key", password=True)
        if not api_key:
            raise MissingApiKey("No OpenAI API key entered. Enter a valid API to proceed.")

        self.store.save(API_KEY_KEY, api_key)
        self.logger.log_system_message("OpenAI API key saved")
        return api_key

    def reset_api_key(self):
        """Forget the stored API key so the next run asks again."""
        self.store.save(API_KEY_KEY, "")
        self.logger.log_system_message("OpenAI API key removed")
        self.display.info("Stored OpenAI API key removed.")

    def configure_and_run(self, raw_text: Optional[str] = None,
                          intent: Optional[Intent] = None) -> Optional[FlowResult]:
        """
        Run one request end to end.

        Args:
            raw_text: The request; asked for when not given
            intent: Force a flow instead of detecting it from the text

        Returns:
            FlowResult, or None when the invocation was aborted
        """
        try:
            api_key = self.resolve_api_key()

            if raw_text is None:
                raw_text = self.prompter.ask("Enter your prompt")
            if not raw_text or not raw_text.strip():
                raise NoUserInput("No project description entered. Project setup canceled.")

            self.logger.log_user_query(raw_text)

            if intent is None:
                intent = detect_intent(raw_text)
            self.log_debug(f"Intent: {intent.value}")

            if intent is Intent.SHORTCUTS:
                return self.run_shortcut_flow(api_key)
            return self.run_setup_flow(api_key, raw_text)

        except (MissingApiKey, NoUserInput) as e:
            self.display.warning(str(e))
            self.logger.log_system_message(f"Aborted: {e}")
        except (NetworkError, MalformedResponseError, ExecutionError) as e:
            self.display.error(f"DevFlow failed to proceed: {e}")
            self.logger.log_system_message(f"Error: {e}")

        return None

    def call_api_with_animation(self, api_key: str, prompt: str) -> str:
        """Call the completion API with a loading animation using Rich."""
        with console.status("[bold blue]Thinking...[/bold blue]", spinner="dots"):
            try:
                return self.client.complete(api_key, prompt)
            except DevFlowError as e:
                self.log_debug(f"API call error: {str(e)}")
                raise

    def _request_completion(self, api_key: str, template: str, request: str) -> str:
        prompt = compose_prompt(template, request, self.history.entries)
        self.logger.log_prompt(prompt)
        self.log_debug(f"Prompt has {len(prompt)} characters, {len(self.history.entries)} previous responses")

        response = self.call_api_with_animation(api_key, prompt)

        # Only successful completions reach the history
        self.logger.log_response(response)
        self.history.record(response)

        self.display.present(response)
        return response

    def run_setup_flow(self, api_key: str, raw_text: str) -> FlowResult:
        """Ask for setup commands and run them in the shell."""
        response = self._request_completion(api_key, SETUP_COMMANDS_TEMPLATE, raw_text)

        command_text = extract_commands(response)
        if not command_text:
            self.display.warning("The response contained no commands to run.")
            self.logger.log_system_message("No commands extracted from response")
            return FlowResult(Intent.SETUP_COMMANDS, response)

        self.logger.log_command(command_text)
        self.executor.execute(command_text)
        self.display.info("DevFlow Executed!")
        return FlowResult(Intent.SETUP_COMMANDS, response, command_text)

    def run_shortcut_flow(self, api_key: str) -> FlowResult:
        """Suggest shortcuts and extensions, then optionally install one."""
        response = self._request_completion(api_key, EXTENSION_SUGGESTION_TEMPLATE, SHORTCUTS_REQUEST)

        extension_id = self.prompter.ask(
            "Enter the name of the vs code extension you want to install (or type ESC to skip)"
        )
        if not extension_id or is_escape_signal(extension_id):
            self.display.info("Extension installation skipped.")
            self.logger.log_system_message("Extension installation skipped")
            return FlowResult(Intent.SHORTCUTS, response)

        install_command = build_install_command(extension_id)
        self.logger.log_command(install_command)
        self.executor.execute(install_command)
        self.display.info(f"Extension '{extension_id}' installed successfully!")
        return FlowResult(Intent.SHORTCUTS, response, install_command)

    def clear_history(self):
        """Reset the response history to empty."""
        self.history.reset()
        self.logger.log_system_message("Response history cleared")
        self.display.info("Response history cleared.")

    def show_history(self):
        """Display the stored responses with their timestamps."""
        if not self.history.entries:
            console.print("[dim]No previous responses.[/dim]")
            return

        table = Table(title="Previous responses")
        table.add_column("Time", style="cyan", no_wrap=True)
        table.add_column("Response")
        for entry in self.history.entries:
            when = datetime.fromtimestamp(entry.timestamp / 1000).strftime("%Y-%m-%d %H:%M:%S")
            table.add_row(when, Text(entry.response))
        console.print(table)

    def show_help(self):
        """Display help information."""
        help_text = (
            "[bold]DevFlow[/bold] turns a request into setup commands and runs them.\n\n"
            "Type a request such as [italic]set up a node project[/italic].\n"
            "Mention [italic]shortcuts[/italic] to get editor shortcut and extension suggestions.\n\n"
            "[bold]Commands:[/bold]\n"
            "  help           Show this help\n"
            "  clear history  Forget previous responses\n"
            "  show history   Show previous responses\n"
            "  show log       Show the session log\n"
            "  exit, quit     Leave DevFlow"
        )
        console.print(Panel(help_text, title="Help", expand=False))

    def run(self):
        """Main loop for interactive use."""
        try:
            while True:
                user_input = Prompt.ask("\n[bold green]What would you like me to set up?[/bold green]")
                command = user_input.strip().lower()

                if command in ("exit", "quit"):
                    console.print("[bold blue]Exiting DevFlow. Goodbye![/bold blue]")
                    break

                if command == "help":
                    self.show_help()
                    continue

                if command in ("clear history", "clear response history"):
                    self.clear_history()
                    continue

                if command in ("show history", "view history"):
                    self.show_history()
                    continue

                if command in ("show log", "view log"):
                    console.print(Panel(Text(self.logger.get_conversation_history()),
                                        title=f"Log File: {self.logger.log_file}", expand=False))
                    continue

                self.configure_and_run(user_input)

        except (KeyboardInterrupt, EOFError):
            console.print("\n[bold blue]Interrupted. Exiting DevFlow. Goodbye![/bold blue]")
        except Exception as e:
            console.print(f"[bold red]An error occurred: {str(e)}[/bold red]")
            if self.debug:
                import traceback
                console.print(traceback.format_exc())
