"""
Projects module: projects, their ordered task lists (kanban columns) and membership.
"""
