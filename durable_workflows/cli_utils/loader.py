"""Resolve ``module:attribute`` references given on the command line."""

from __future__ import annotations

import importlib
import os
import sys

from durable_workflows.registry import WorkflowRegistry


def _import_attribute(reference: str) -> object:
    module_name, sep, attribute = reference.partition(":")
    if not sep or not module_name or not attribute:
        raise ValueError(
            f"Invalid reference '{reference}', expected 'package.module:attribute'"
        )

    cwd = os.getcwd()
    if cwd not in sys.path:
        sys.path.insert(0, cwd)

    target: object = importlib.import_module(module_name)
    for part in attribute.split("."):
        target = getattr(target, part)
    return target


def load_registry(reference: str) -> WorkflowRegistry:
    """Import the :class:`WorkflowRegistry` named by ``reference``.

    The attribute may be a registry or a zero-argument callable returning one.
    """

    target = _import_attribute(reference)
    if callable(target) and not isinstance(target, WorkflowRegistry):
        target = target()
    if not isinstance(target, WorkflowRegistry):
        raise TypeError(f"'{reference}' does not resolve to a WorkflowRegistry")
    return target
