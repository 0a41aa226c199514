"""
Registration queue module.

Self-service signups land in user_registration_queue as PENDING and only
become User accounts once an admin approves them. Every review decision is
written to admin_approval_logs.
"""
