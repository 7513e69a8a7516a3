"""
Models package for WatchParty.
"""

from .room import Room, ChatMessage, generate_room_code, generate_user_id

__all__ = ['Room', 'ChatMessage', 'generate_room_code', 'generate_user_id']
