"""
LLM agent loop package.

Agents:
- QueryAgent: read-only access to the user's records (query_user_data)
- DelegateAgent: single-shot long-form generation without side effects (delegate_generate)
- WritebackAgent: maps writeback tool calls to payloads and commits them

The orchestrator aggregates agent tools and drives an OpenAI function-calling loop
against the model gateway, which falls back across candidate models.
"""
