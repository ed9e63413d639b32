"""
Integration test package for the load harness.

These tests start the fake service stack on a local port and drive it
through real Locust HTTP sessions and short in-process runs:
- Signing and verification workflows end to end
- Shared token exchange against the fake identity provider
- Combined and standalone-verification runs via ``tas_perf.runner``
"""
