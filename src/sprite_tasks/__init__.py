"""
sprite-tasks: hand work between sprites through a shared object store.

A node creates a task for a peer; the peer later checks its queue, runs the
task in a work session and reports completion. No direct node-to-node
connection is needed beyond a best-effort wake notification.
"""

__version__ = "0.1.0"
