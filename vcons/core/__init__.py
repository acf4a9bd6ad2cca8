# SPDX-License-Identifier: MIT
"""Core: construction variables, build cache, builders and the executor."""
