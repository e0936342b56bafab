"""
Workflow handlers mixed into the controller.

Each mixin owns one lifecycle (worktrees, merges, task routing, sessions)
or one group of keyboard layers (overlays, navigation). Handlers take the
cloned ``AppState`` and return the commands to run.
"""
