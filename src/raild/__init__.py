"""
raild - a daemon bridging a model-railway hub to scripted control logic.

- Reactor: single-threaded readiness loop. Owns registered descriptors and timers as
  EventRecords, dispatches them by type and reclaims removed records after each pass.
- UART protocol: parses the byte stream from the hub, mirrors its state in HubState and
  keeps the link alive with a keepalive watchdog.
- Contexts: every registered descriptor and timer gets a context. Script code always runs
  "as" a context, which scopes handlers, timers and where output is sent.
- Scripting host: a sandboxed Python namespace bootstrapped with a small support library
  (the prelude). Scripts react to hub events and drive switches and power.
- API server: each TCP connection is a context. Lines received are evaluated as script
  code and output is routed back to the peer.
"""

__version__ = '0.1.0'
