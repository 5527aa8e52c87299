"""
Task subsystem.

Components:
- task_models.py: data structures (Task, TaskStatus, locations)
- uploader.py: local image refs -> durable URLs
- transaction.py: pre-image snapshot + rollback for optimistic changes
- synchronizer.py: in-memory task set reconciled against the store
- locations.py: superadmin-managed named places
"""
