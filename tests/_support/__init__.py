"""
Test support utilities for courier tests.

Helpers that are not pytest fixtures but are shared across test files
live in submodules here (``tests._support.fakes``).
"""
