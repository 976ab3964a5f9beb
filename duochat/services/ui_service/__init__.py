"""
UI service - Streamlit rendering of the chat core.
"""

# Lazy import so the core can be used without loading streamlit pages
def get_chat_interface():
    from .chat_interface import get_chat_interface as _get_chat_interface
    return _get_chat_interface()


def get_chat_app():
    from .chat_interface import get_chat_app as _get_chat_app
    return _get_chat_app()


__all__ = [
    'get_chat_interface',
    'get_chat_app'
]
