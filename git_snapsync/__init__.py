"""
Git Snapsync - Keep a monorepo subdirectory in sync with a public repository.

The remote repository's git metadata is cached as a compressed snapshot next to
the synced files, so every run has enough shared history for git to rebase
local changes onto the remote without submodules or subtrees.
"""

__version__ = "1.0.0"
