"""
Persistence Layer.

    - documents.py: Keyed document store (jobs, feeds)
    - jobs.py: Job repository enforcing the job state machine
    - objects.py: Public object storage for audio artifacts
"""
