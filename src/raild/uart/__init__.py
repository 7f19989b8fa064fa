"""
The serial link to the hub: the opcode table, the transport (conduit) and the protocol
engine that mirrors the hub state.
"""
