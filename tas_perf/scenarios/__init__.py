"""
Locust user classes for the two workloads.

- :mod:`.signing`: signers: crypto material, certificate, log entries
- :mod:`.verification`: verifiers: entry lookup and TSA chain fetch

Both inherit from :class:`~tas_perf.scenarios.base.PipelineUser`, which
binds the run context and enforces the per-pool duration.
"""
