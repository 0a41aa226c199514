"""
Role dashboards and the reports API (aggregate counts only, no models of its own).
"""
