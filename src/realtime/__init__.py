"""Control plane for OpenAI Realtime SIP calls.

Inbound calls reach the Realtime API over SIP trunking; this package verifies the
webhook, accepts the call, and supervises the per-call WebSocket that carries
function-call requests back to local tools.
"""
