"""
Workflows Module

Abstract workflow specs, the node builders and graph compiler that turn them
into engine documents, the readiness gate in front of compilation, and the
persisted workflow records.
"""
