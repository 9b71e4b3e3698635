"""
NotifyHub Migrations

Ordered SQL files applied by migrate.py.
"""
