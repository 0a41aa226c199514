"""Accounts: own profile, admin user management and role changes."""
