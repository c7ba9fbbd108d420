"""Provider adapters: reporting backends errors are delivered to.

Implementations support multiple output channels:
- Console (terminal pretty-print)
- Webhook (JSON POST to any HTTP collector)
"""
