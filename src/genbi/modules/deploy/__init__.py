"""
GenBI Deploy Module.

Semantics deployment of the current manifest and the deployment log.
"""
