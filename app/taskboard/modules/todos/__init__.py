"""
Personal todos: owner-only checklist items, optionally linked to a project.
"""
