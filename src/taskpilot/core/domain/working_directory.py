"""
Working-directory context tracking.

Generated plans use paths relative to where the agent *thinks* it is, and
that location shifts whenever a command changes directory or scaffolds a
new project. This module infers the logical directory after a command and
resolves task paths against it.
"""

import os
import posixpath
import re
import shlex
from typing import Optional

_SEGMENT_SPLIT = re.compile(r"\s*(?:&&|\|\||;)\s*")

# (executable, subcommand) pairs whose next positional argument is a new project dir
_SUBCOMMAND_SCAFFOLDERS = {
    ("django-admin", "startproject"),
    ("cargo", "new"),
    ("poetry", "new"),
    ("rails", "new"),
    ("ng", "new"),
    ("vue", "create"),
    ("flutter", "create"),
}
_PACKAGE_MANAGERS = {"npm", "yarn", "pnpm", "bun"}
_PACKAGE_RUNNERS = {"npx", "pnpx", "bunx"}


def _normalize(path: str) -> str:
    return path.replace("\\", "/")


def _tokenize(segment: str) -> list[str]:
    try:
        return shlex.split(segment)
    except ValueError:
        return segment.split()


def _positional(args: list[str]) -> list[str]:
    """Positional arguments before a ``--`` terminator, skipping flags."""
    positional = []
    for arg in args:
        if arg == "--":
            break
        if arg.startswith("-"):
            continue
        positional.append(arg)
    return positional


def _valid_target(name: Optional[str]) -> Optional[str]:
    if not name or name in (".", "./") or name.startswith("-"):
        return None
    return _normalize(name).rstrip("/")


def scaffold_target(tokens: list[str]) -> Optional[str]:
    """
    Return the directory a scaffolding command creates, if recognised.

    Examples:
        npm create vite@latest myapp -- --template react -> "myapp"
        npx create-react-app shop -> "shop"
        git clone https://host/org/repo.git -> "repo"
    """
    if not tokens:
        return None
    head, args = tokens[0], tokens[1:]

    if head in _PACKAGE_MANAGERS and args and args[0] in ("create", "init"):
        positional = _positional(args[1:])
        return _valid_target(positional[1]) if len(positional) >= 2 else None

    if head in _PACKAGE_RUNNERS:
        positional = _positional(args)
        if positional and positional[0].split("@")[0].startswith("create-"):
            return _valid_target(positional[1]) if len(positional) >= 2 else None
        return None

    if head == "git" and args and args[0] == "clone":
        positional = _positional(args[1:])
        if len(positional) >= 2:
            return _valid_target(positional[1])
        if positional:
            repo = _normalize(positional[0]).rstrip("/").rsplit("/", 1)[-1]
            return _valid_target(repo[:-4] if repo.endswith(".git") else repo)
        return None

    if head == "dotnet" and args and args[0] == "new":
        for flag in ("-o", "--output"):
            if flag in args:
                index = args.index(flag)
                if index + 1 < len(args):
                    return _valid_target(args[index + 1])
        return None

    if args and (head, args[0]) in _SUBCOMMAND_SCAFFOLDERS:
        positional = _positional(args[1:])
        return _valid_target(positional[0]) if positional else None

    return None


def _cd_target(tokens: list[str]) -> Optional[str]:
    if not tokens or tokens[0] != "cd":
        return None
    args = [a for a in tokens[1:] if a.lower() != "/d"]
    if not args or args[0] == "~":
        return None
    return _normalize(args[0])


def next_working_directory(current: str, command: str) -> Optional[str]:
    """
    Infer the logical working directory after ``command`` succeeds.

    Handles chained commands (``cd app && npm install``), ``cd ..`` and
    scaffolding commands that create a project subdirectory.

    Args:
        current: Logical working directory before the command
        command: Shell command text

    Returns:
        The new directory, or None if the command does not change it.
        Absolute ``cd`` targets are returned as absolute paths.
    """
    # A scaffolded project only becomes the cwd if no later cd moves the shell.
    shell_dir = _normalize(current or ".")
    scaffolded: Optional[str] = None
    changed = False
    for segment in _SEGMENT_SPLIT.split(command.strip()):
        tokens = _tokenize(segment)
        cd_target = _cd_target(tokens)
        if cd_target is not None:
            shell_dir = _join(shell_dir, cd_target)
            scaffolded = None
            changed = True
            continue
        created = scaffold_target(tokens)
        if created is not None:
            scaffolded = _join(shell_dir, created)
            changed = True
    if not changed:
        return None
    return scaffolded or shell_dir


def _join(base: str, target: str) -> str:
    if posixpath.isabs(target):
        return posixpath.normpath(target)
    return posixpath.normpath(posixpath.join(base, target))


def _is_within(path: str, root: str) -> bool:
    try:
        return os.path.commonpath([os.path.abspath(path), os.path.abspath(root)]) == os.path.abspath(root)
    except ValueError:
        return False


def to_logical(root: str, directory: str) -> Optional[str]:
    """Express ``directory`` relative to ``root``; None if it lies outside."""
    if not os.path.isabs(directory):
        directory = os.path.join(root, directory)
    if not _is_within(directory, root):
        return None
    relative = os.path.relpath(os.path.abspath(directory), os.path.abspath(root))
    return _normalize(relative)


def resolve_path(root: str, working_directory: str, path: str) -> str:
    """
    Resolve a task path to an absolute path inside the workspace.

    Absolute paths inside ``root`` are kept. Other absolute paths have their
    leading slash dropped and are treated as relative. Relative paths that
    already start with the working directory are not prefixed twice.
    """
    normalized = _normalize(path.strip())
    if os.path.isabs(normalized):
        if _is_within(normalized, root):
            return os.path.normpath(normalized)
        normalized = normalized.lstrip("/")

    working = _normalize(working_directory or ".").strip("/") or "."
    if working != "." and (
        normalized == working or normalized.startswith(working + "/")
    ):
        return os.path.normpath(os.path.join(root, normalized))
    return os.path.normpath(os.path.join(root, working, normalized))
