"""giti: a git wrapper that remembers which branch each branch is based on."""
