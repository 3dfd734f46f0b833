"""
PDF Tools Service
=================
Upload, process and download PDF documents through asynchronous jobs.

Architecture:
    - File Registry: Tracks uploaded and generated files
    - Operation Dispatcher: Validates and routes named PDF operations
    - Job Lifecycle Manager: Runs each job at most once on a worker pool
    - Status Polling: Job status payloads and a polling HTTP client

Version: 1.0.0
"""

__version__ = "1.0.0"
