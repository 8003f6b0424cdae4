"""dnsprompt: answer DNS TXT queries with a chat-completion LLM."""

__version__ = "0.3.0"
