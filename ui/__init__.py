"""
UI Module

Terminal views for the query intelligence console.

Components:
- DebugConsoleUI: Analysis tables, health feed, metrics and pattern registry

Author: AI System
Version: 1.0
"""

from ui.debug_console import DebugConsoleUI

__all__ = [
    'DebugConsoleUI',
]

__version__ = '1.0.0'
