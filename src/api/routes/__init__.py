"""
API Routes package
"""
from . import assignments, auth, functions, lessons, notifications, submissions, users

__all__ = ['assignments', 'auth', 'functions', 'lessons', 'notifications', 'submissions', 'users']
