# SPDX-License-Identifier: MIT
"""Builders registered with every Environment unless excluded."""

from vcons.builders.cfile import CFile
from vcons.builders.command import Command
from vcons.builders.disassemble import Disassemble
from vcons.builders.library import Library
from vcons.builders.object import Object
from vcons.builders.preprocess import Preprocess
from vcons.builders.program import Program

DEFAULT_BUILDERS = [
    CFile,
    Command,
    Disassemble,
    Library,
    Object,
    Preprocess,
    Program,
]

__all__ = [
    "DEFAULT_BUILDERS",
    "CFile",
    "Command",
    "Disassemble",
    "Library",
    "Object",
    "Preprocess",
    "Program",
]
