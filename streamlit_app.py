import streamlit as st

from duochat.config.app_config import get_config
from duochat.services.ui_service.chat_interface import get_chat_interface
from duochat.utils.logging_config import initialize_logging, get_logger

# Initialize logging and error tracking
error_tracker = initialize_logging()
logger = get_logger(__name__)

# Get configuration
config = get_config()


def main():
    """Main application content"""
    st.set_page_config(page_title=config.ui.app_title, page_icon="💬")
    st.markdown(f"# 💬 {config.ui.app_title}")

    try:
        interface = get_chat_interface()
    except Exception as e:
        error_tracker.track_error(e, "chat_app_initialization")
        st.error("Failed to load conversations. Please refresh the page.")
        return

    interface.run()


main()
