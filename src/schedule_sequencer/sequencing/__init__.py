"""Task sequencing engine for server schedules.

A schedule belongs to exactly one server and owns an ordered chain of tasks.
Every mutation is checked against the server -> schedule -> task ownership
chain before it touches storage, and new tasks receive ``max(sequence_id) + 1``
under a per-schedule lock backed by a unique ``(schedule_id, sequence_id)``
index, so concurrent creates never share a position.
"""
