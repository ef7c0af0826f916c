"""
Reports module.

- Dashboard analytics counters
- Team activity feed
- CSV export of the customer list
"""
