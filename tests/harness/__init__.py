"""Test harness for branchat.

Re-exports all public API for convenient imports:
    from tests.harness import make_tree, make_service, run_app, ...
"""

from tests.harness.builders import (
    TreeService,
    make_service,
    make_tree,
    plain_text,
    sequential_ids,
)
from tests.harness.app_runner import run_app
from tests.harness.interactions import press_and_settle, type_and_submit

__all__ = [
    "TreeService",
    "make_service",
    "make_tree",
    "plain_text",
    "sequential_ids",
    "run_app",
    "press_and_settle",
    "type_and_submit",
]
