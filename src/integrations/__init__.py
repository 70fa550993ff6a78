"""
Integrations layer.

Outbound clients for external systems:
- Telegram Bot API notifications (src/integrations/telegram)
- Gemini agreement editing (src/integrations/gemini)

Clients are built once in src/api/main.py and handed to the getters in
src/backoffice/dependencies.py (tests override the getters with fakes).
"""
