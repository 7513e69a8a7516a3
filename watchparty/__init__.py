"""
WatchParty - two-seat synchronized watch rooms over WebSocket.
"""
