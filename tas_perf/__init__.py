"""
Load harness for a certificate-transparency style signing pipeline.

Drives two concurrent Locust workloads against an OIDC provider, a
certificate authority (Fulcio), a transparency log (Rekor) and a
timestamping authority:

- **signing** users fetch crypto material, obtain a certificate and
  append log entries, publishing every new entry UUID to a shared pool;
- **verification** users sample that pool (or a recorded UUID file) and
  read the entries back.

Entry points: :mod:`tas_perf.locustfile` for the ``locust`` CLI and
:mod:`tas_perf.runner` for in-process runs.
"""

__version__ = "0.1.0"
