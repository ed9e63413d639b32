"""
Test suite for the signing-pipeline load harness.

This package contains:
- unit/: Workflow, pool, identity and configuration tests against fake sessions
- integration/: Workflows and short in-process Locust runs against a local fake stack
"""
