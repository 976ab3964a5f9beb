"""
External service clients (OpenAI SDK, chat proxy).
"""
