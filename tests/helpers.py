"""Build real git repositories for tests."""

import os
import subprocess


def git(path: str, *args: str) -> str:
    result = subprocess.run(
        ["git", "-C", path, *args], capture_output=True, text=True, check=True,
    )
    return result.stdout


def init_repo(path: str) -> str:
    """Create an empty repo (unborn HEAD) with a local identity."""
    subprocess.run(["git", "init", "-q", path], capture_output=True, check=True)
    git(path, "config", "user.email", "test@test.com")
    git(path, "config", "user.name", "Test User")
    git(path, "config", "commit.gpgsign", "false")
    return path


def write(path: str, name: str, content: str = "content\n") -> str:
    file_path = os.path.join(path, name)
    with open(file_path, "w") as f:
        f.write(content)
    return file_path


def commit_file(path: str, name: str, content: str = "content\n", message: str = "commit") -> None:
    write(path, name, content)
    git(path, "add", name)
    git(path, "commit", "-q", "-m", message)


def add_remote(repo: str, remote: str) -> str:
    """Create a bare remote, push the current branch to it and track it."""
    subprocess.run(["git", "init", "-q", "--bare", remote], capture_output=True, check=True)
    git(repo, "remote", "add", "origin", remote)
    git(repo, "push", "-q", "-u", "origin", "HEAD")
    return remote


def create_clean_repo(root: str, name: str = "clean-repo") -> str:
    """Committed, pushed, nothing untracked."""
    repo = init_repo(os.path.join(root, name))
    commit_file(repo, "test.txt", message="Initial commit")
    add_remote(repo, os.path.join(root, f"{name}-remote.git"))
    return repo


def create_nasty_repo(root: str, name: str = "nasty-repo") -> str:
    """Like a clean repo, plus one untracked file."""
    repo = create_clean_repo(root, name)
    write(repo, "untracked.txt", "forgotten\n")
    return repo
