"""
The embedded scripting environment: a sandboxed namespace, its support library and the
native API bridging scripts to the hub, timers and events.
"""
