from .chat_client import ChatClient, ChunkCallback, describe_attachment

__all__ = [
    'ChatClient',
    'ChunkCallback',
    'describe_attachment',
]
