"""
Linksort Assistant

Chat assistant for Linksort that drives a streaming model in a tool-use
loop over the user's links and folders.

Components:
- agent: Round loop that calls the model and runs requested tools
- decoder: Folds provider stream events into a message
- tools: Tool contract and registry
- link_tools: Link and folder tools backed by the controllers
- assistant: System prompt, tool wiring and converse turns
- anthropic_client / ollama_client: Streaming model providers
- api: Conversation endpoints
"""

__version__ = "0.1.0"
