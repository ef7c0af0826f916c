"""
Customers module.

Scope:
- Customers CRUD with status/region/search filters
- Free-text notes per customer
- Every mutation records team activity and publishes a change event
"""
