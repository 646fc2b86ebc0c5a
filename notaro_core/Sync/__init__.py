"""
Replication between notes stores.

`sync_messages` defines the wire envelope; `Sync_Library` applies messages to a
local `NotaroDB` and tracks per-peer watermarks.
"""
