"""
CLI Package
"""

from .commands import cmd_ask, cmd_chat, cmd_gems
from .main import create_parser, main

__all__ = ["cmd_ask", "cmd_chat", "cmd_gems", "create_parser", "main"]
