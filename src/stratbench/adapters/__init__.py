"""Strategy adapters: the reference implementation and chat-model backends."""
