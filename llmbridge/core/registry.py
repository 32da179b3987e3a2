"""Gateway registry for breaking circular imports.

This module holds the request gate and provider router so that routes can
import them without causing circular imports with the main module.
"""

# Global instances - set by main.py during initialization
gate = None
router = None


def set_gate(gate_instance):
    """Set the global request gate."""
    global gate
    gate = gate_instance


def get_gate():
    """Get the global request gate."""
    if gate is None:
        raise RuntimeError("Gate not initialized. Did you call set_gate?")
    return gate


def set_router(router_instance):
    """Set the global router instance."""
    global router
    router = router_instance


def get_router():
    """Get the global router instance."""
    if router is None:
        raise RuntimeError("Router not initialized. Did you call set_router?")
    return router
