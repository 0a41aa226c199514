"""
Tasks module: tasks on project lists, subtasks, comments and the per-task change history.
"""
