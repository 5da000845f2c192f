"""
Database seeding for the dashboard.

Runtime DB access lives in the services. This package holds repo-level DB operations:
- Placeholder dataset (users, customers, invoices, revenue)
- Idempotent seeder over the Supabase admin client
"""
