"""
The `integrations` module provides the collaborator contracts Reprise consumes
(container runtime, network provider, startup check) and their Docker-backed
implementations.
"""
