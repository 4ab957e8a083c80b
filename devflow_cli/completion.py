#!/usr/bin/env python3
"""
Shell completion for the devflow command.
"""

import os
import sys
from pathlib import Path

OPTIONS = (
    "--shortcuts --clear-history --show-history --reset-key --state-file "
    "--model --base-url --view --env-file --debug --logs-dir --max-logs --show-log"
)

BASH_COMPLETION = """
_devflow_completion() {
    local cur prev opts
    COMPREPLY=()
    cur="${COMP_WORDS[COMP_CWORD]}"
    prev="${COMP_WORDS[COMP_CWORD-1]}"

    # All options
    opts="%s"

    # Handle special cases
    case "${prev}" in
        --view)
            COMPREPLY=( $(compgen -W "output tree" -- ${cur}) )
            return 0
            ;;
        --env-file|--state-file)
            COMPREPLY=( $(compgen -f -- ${cur}) )
            return 0
            ;;
        --logs-dir)
            COMPREPLY=( $(compgen -d -- ${cur}) )
            return 0
            ;;
        *)
            ;;
    esac

    # Complete options if cur starts with -
    if [[ ${cur} == -* ]] ; then
        COMPREPLY=( $(compgen -W "${opts}" -- ${cur}) )
        return 0
    fi

    return 0
}

complete -F _devflow_completion devflow
""" % OPTIONS

ZSH_COMPLETION = """
#compdef devflow

_devflow() {
    local -a options

    options=(
        '--shortcuts[Suggest editor shortcuts and extensions]'
        '--clear-history[Clear the response history]'
        '--show-history[Show the response history]'
        '--reset-key[Forget the stored OpenAI API key]'
        '--state-file[Path of the state file]:state file:_files'
        '--model[Completion model]:model:'
        '--base-url[API base URL]:url:'
        '--view[How to show responses]:view:(output tree)'
        '--env-file[Path to the environment file]:env file:_files'
        '--debug[Enable debug logging]'
        '--logs-dir[Directory where session logs are stored]:logs dir:_files -/'
        '--max-logs[Maximum number of log files to keep]:count:'
        '--show-log[Display the log after completion]'
    )

    _arguments -C $options '*::request:'
}

_devflow
"""

FISH_COMPLETION = """
complete -c devflow -l shortcuts -d "Suggest editor shortcuts and extensions"
complete -c devflow -l clear-history -d "Clear the response history"
complete -c devflow -l show-history -d "Show the response history"
complete -c devflow -l reset-key -d "Forget the stored OpenAI API key"
complete -c devflow -l state-file -d "Path of the state file" -r
complete -c devflow -l model -d "Completion model" -x
complete -c devflow -l base-url -d "API base URL" -x
complete -c devflow -l view -d "How to show responses" -xa "output tree"
complete -c devflow -l env-file -d "Path to the environment file" -r
complete -c devflow -l debug -d "Enable debug logging"
complete -c devflow -l logs-dir -d "Directory where session logs are stored" -r
complete -c devflow -l max-logs -d "Maximum number of log files to keep" -x
complete -c devflow -l show-log -d "Display the log after completion"
"""

SCRIPTS = {
    "bash": BASH_COMPLETION,
    "zsh": ZSH_COMPLETION,
    "fish": FISH_COMPLETION,
}


def get_completion_script(shell):
    """Return the completion script for the specified shell, or None if unsupported."""
    return SCRIPTS.get(shell)


def print_completion_script(shell):
    """Print the completion script for the specified shell."""
    script = get_completion_script(shell)
    if script is None:
        print(f"Unsupported shell: {shell}", file=sys.stderr)
        sys.exit(1)
    print(script)


# Where each shell looks for the script, relative to the home directory, and
# the marker that tells an existing install apart
INSTALL_TARGETS = {
    "bash": (Path(".bash_completion"), "_devflow_completion"),
    "zsh": (Path(".zsh") / "completion" / "_devflow", "#compdef devflow"),
    "fish": (Path(".config") / "fish" / "completions" / "devflow.fish", "complete -c devflow"),
}


def _write_once(path, script, marker):
    """Append the script to path unless the marker is already there."""
    path.parent.mkdir(parents=True, exist_ok=True)
    existing = path.read_text() if path.exists() else ""
    if marker in existing:
        return False

    with open(path, "a") as f:
        f.write(f"\n# DevFlow completion\n{script}")
    return True


def _add_zsh_fpath(home, completion_dir):
    zshrc = home / ".zshrc"
    if not zshrc.exists() or str(completion_dir) in zshrc.read_text():
        return

    with open(zshrc, "a") as f:
        f.write(f"\n# Add devflow completion\nfpath=({completion_dir} $fpath)\nautoload -Uz compinit && compinit\n")


def install_completion(shell=None, home=None):
    """Install the completion script for the user's shell and return its path."""
    if shell is None:
        # Try to detect the current shell
        shell = os.path.basename(os.environ.get("SHELL", ""))

    if shell not in INSTALL_TARGETS:
        print(f"Unsupported shell: {shell}", file=sys.stderr)
        sys.exit(1)

    home = Path(home) if home else Path.home()
    relative_path, marker = INSTALL_TARGETS[shell]
    completion_file = home / relative_path

    if not _write_once(completion_file, SCRIPTS[shell], marker):
        print(f"{shell} completion for devflow is already installed in {completion_file}")
        return completion_file

    if shell == "zsh":
        _add_zsh_fpath(home, completion_file.parent)

    print(f"{shell} completion installed to {completion_file}")
    print("Please restart your shell to enable it")
    return completion_file


def main():
    if len(sys.argv) < 2:
        print("Usage: devflow-completion [bash|zsh|fish] [--install]", file=sys.stderr)
        sys.exit(1)

    shell = sys.argv[1]

    if len(sys.argv) > 2 and sys.argv[2] == "--install":
        install_completion(shell)
    else:
        print_completion_script(shell)


if __name__ == "__main__":
    main()
