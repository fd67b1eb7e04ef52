"""
Domain services package
"""
from . import batching, coursework, errors, focus, identity, lessons, notifications, user_admin, user_deletion

__all__ = [
    'batching', 'coursework', 'errors', 'focus', 'identity', 'lessons',
    'notifications', 'user_admin', 'user_deletion',
]
