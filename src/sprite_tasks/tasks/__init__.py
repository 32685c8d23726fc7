"""
Task subsystem.

Components:
- task_models.py: data structures (Task, TaskStatus, TaskResult, NodeQueue)
- task_store.py: task registry over the shared object store
- task_queue.py: per-node FIFO queue + current-task slot
- coordinator.py: lifecycle operations (create, distribute, check, complete, cancel, reassign)
- status.py: read-only views (my tasks, status across nodes)
- task_scheduler.py: polling loop that keeps a node draining its queue
"""
