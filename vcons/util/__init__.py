# SPDX-License-Identifier: MIT
"""Utility helpers for paths, commands and dependency files."""
