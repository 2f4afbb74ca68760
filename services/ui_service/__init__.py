"""
UI service - per-browser session objects behind the Streamlit pages.
"""

from .chat_widget import ChatWidgetSession, TranscriptEntry, close_idle_widgets, get_chat_widget
from .staff_console import StaffConsoleSession, clear_staff_console, get_staff_console

__all__ = [
    'ChatWidgetSession',
    'TranscriptEntry',
    'close_idle_widgets',
    'get_chat_widget',
    'StaffConsoleSession',
    'clear_staff_console',
    'get_staff_console',
]
