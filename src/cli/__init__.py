"""CLI tools for Lectern.

- ``python -m src.cli worker``: run the processing queue worker.
- ``python -m src.cli enqueue``: register and enqueue a material.
- ``python -m src.cli stats``: queue and course statistics.
- ``python -m src.cli retry-failed``: re-queue failed jobs.
- ``python -m src.cli query``: ask a question from the terminal.
"""
